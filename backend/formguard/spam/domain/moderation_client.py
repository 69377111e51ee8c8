"""Client for the external AI moderation endpoint."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping, Optional

import httpx
from redis.exceptions import RedisError

from formguard.infra import rate_limit
from formguard.infra.redis import RedisProxy
from formguard.obs import metrics as obs_metrics
from formguard.spam.domain.errors import ConfigError, ParseError, RateLimitError, ServiceError
from formguard.spam.domain.log_store import hash_submitter
from formguard.spam.domain.models import ModerationResult, Submission

logger = logging.getLogger(__name__)

MODERATION_MODELS = frozenset({"moderation", "omni-moderation-latest"})
CHAT_MODELS = ("gpt-4o-mini", "gpt-4o", "gpt-4-turbo", "gpt-3.5-turbo")
DEFAULT_CHAT_MODEL = "gpt-4o-mini"

MODERATION_TIMEOUT = 30.0
CHAT_TIMEOUT = 45.0

LANGUAGE_NAMES = {
    "en": "English",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "pl": "Polish",
    "cs": "Czech",
    "ru": "Russian",
    "tr": "Turkish",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
}

SYSTEM_PROMPT = (
    "You are a spam detection expert. Analyze form submissions and provide accurate spam scores with reasoning."
)

USER_PROMPT = """Analyze the following form submission and decide whether it is spam. Consider:

1. Is the content coherent and meaningful?
2. Does it look generated by a bot (repetitive patterns, unnatural phrasing)?
3. Does it contain suspicious links or promotional content?
4. Is the language appropriate and consistent (expected language: {language})?
5. Does it read like a genuine inquiry or message?
6. Common spam patterns (keyword stuffing, odd characters, SEO spam).

Form submission content:
---
{content}
---

Respond ONLY with a JSON object in this exact format:
{{
  "spam_score": 0.0,
  "is_spam": false,
  "reasoning": "Brief explanation",
  "confidence": "high/medium/low",
  "detected_language": "language code"
}}

spam_score is between 0.0 (definitely not spam) and 1.0 (definitely spam).
is_spam is true if spam_score >= 0.7"""

_JSON_OBJECT_RE = re.compile(r"\{[^}]+\}")


def build_text(submission: Submission) -> str:
    return "\n".join(value for value in submission.values.values() if value)


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
    return ""


class ModerationRateLimiter:
    """Per-submitter call budget over a fixed window that opens on the first call."""

    def __init__(
        self,
        *,
        limit: int = 60,
        window_seconds: int = 3600,
        redis: RedisProxy | None = None,
        namespace: str = "moderation",
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._redis = redis
        self._namespace = namespace

    async def acquire(self, submitter_key: str) -> int:
        try:
            count = await rate_limit.hit(
                self._namespace,
                hash_submitter(submitter_key),
                window_seconds=self.window_seconds,
                redis=self._redis,
            )
        except RedisError:
            logger.warning("moderation rate limiter unavailable; allowing call", exc_info=True)
            return 0
        if count > self.limit:
            raise RateLimitError("moderation rate limit exceeded", limit=self.limit, count=count)
        return count


class ModerationClient:
    """Calls either the structured moderation endpoint or a chat model."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_key: Optional[str],
        model: str = "omni-moderation-latest",
        base_url: str = "https://api.openai.com/v1",
        timeout: Optional[float] = None,
        rate_limiter: Optional[ModerationRateLimiter] = None,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._rate_limiter = rate_limiter
        if model in MODERATION_MODELS:
            self.mode = "moderation"
            self.model = "omni-moderation-latest"
        else:
            self.mode = "chat"
            self.model = model if model in CHAT_MODELS else DEFAULT_CHAT_MODEL
        default_timeout = MODERATION_TIMEOUT if self.mode == "moderation" else CHAT_TIMEOUT
        self.timeout = float(timeout) if timeout else default_timeout

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def classify(
        self,
        text: str,
        expected_language: str = "en",
        *,
        submitter_key: Optional[str] = None,
    ) -> ModerationResult:
        """Score ``text``; raises ServiceError (or ConfigError) when the call cannot be made."""

        if not self._api_key:
            raise ConfigError("moderation API key not configured")
        if self._rate_limiter is not None and submitter_key:
            try:
                await self._rate_limiter.acquire(submitter_key)
            except RateLimitError as exc:
                logger.warning("moderation rate limit exceeded", extra={"limit": exc.limit, "count": exc.count})
                obs_metrics.MODERATION_CALLS.labels(outcome="rate_limited").inc()
                return ModerationResult.neutral("Rate limit exceeded", method=self.mode)

        if self.mode == "moderation":
            url = f"{self._base_url}/moderations"
            body: dict[str, Any] = {"input": text, "model": self.model}
        else:
            language = LANGUAGE_NAMES.get((expected_language or "en")[:2].lower(), "English")
            url = f"{self._base_url}/chat/completions"
            body = {
                "model": self.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_PROMPT.format(language=language, content=text)},
                ],
                "temperature": 0.3,
                "max_tokens": 500,
            }

        try:
            response = await self._http.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise ServiceError("moderation request timed out") from exc
        except httpx.HTTPError as exc:
            raise ServiceError(f"moderation request failed: {exc.__class__.__name__}") from exc

        if not 200 <= response.status_code < 300:
            detail = _error_detail(response)
            message = f"moderation endpoint returned HTTP {response.status_code}"
            if detail:
                message = f"{message}: {detail}"
            raise ServiceError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise ServiceError("moderation response was not JSON", status_code=response.status_code) from exc
        if not isinstance(data, Mapping):
            raise ServiceError("moderation response envelope invalid", status_code=response.status_code)

        if self.mode == "moderation":
            result = self._parse_moderation(data)
        else:
            content = self._chat_content(data)
            try:
                result = self._parse_chat(content)
            except ParseError as exc:
                logger.warning("could not parse moderation chat response", extra={"error": str(exc)})
                obs_metrics.MODERATION_CALLS.labels(outcome="error").inc()
                return ModerationResult.unparseable(str(exc), method=self.mode)
        obs_metrics.MODERATION_CALLS.labels(outcome="ok").inc()
        return result

    async def assess(
        self,
        text: str,
        expected_language: str = "en",
        *,
        submitter_key: Optional[str] = None,
    ) -> ModerationResult:
        """Like :meth:`classify` but degrades every failure into a result."""

        try:
            result = await self.classify(text, expected_language, submitter_key=submitter_key)
        except ConfigError as exc:
            logger.warning("moderation skipped", extra={"error": str(exc)})
            obs_metrics.MODERATION_CALLS.labels(outcome="skipped").inc()
            return ModerationResult.skipped_result(str(exc))
        except ServiceError as exc:
            timed_out = isinstance(exc.__cause__, httpx.TimeoutException)
            logger.warning(
                "moderation call degraded",
                extra={"error": str(exc), "status_code": exc.status_code, "timeout": timed_out},
            )
            obs_metrics.MODERATION_CALLS.labels(outcome="timeout" if timed_out else "error").inc()
            return ModerationResult.neutral(str(exc), method=self.mode)
        return result

    # --- parsing -----------------------------------------------------------

    def _parse_moderation(self, data: Mapping[str, Any]) -> ModerationResult:
        results = data.get("results")
        if not isinstance(results, list) or not results or not isinstance(results[0], Mapping):
            raise ServiceError("moderation response missing results")
        first = results[0]
        flagged = bool(first.get("flagged", False))
        raw_scores = first.get("category_scores") or {}
        scores: dict[str, float] = {}
        if isinstance(raw_scores, Mapping):
            for category, value in raw_scores.items():
                try:
                    scores[str(category)] = float(value)
                except (TypeError, ValueError):
                    continue
        max_score = max(scores.values(), default=0.0)
        categories = tuple(category for category, value in scores.items() if value > 0.5)
        return ModerationResult(
            score=max(0.0, min(1.0, max_score)),
            is_spam=flagged or max_score > 0.7,
            reason=", ".join(categories) if flagged and categories else ("flagged" if flagged else "Content appears safe"),
            categories=categories,
            method=self.mode,
        )

    def _chat_content(self, data: Mapping[str, Any]) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ServiceError("moderation response missing message content") from exc
        if not isinstance(content, str):
            raise ServiceError("moderation response missing message content")
        return content

    def _parse_chat(self, content: str) -> ModerationResult:
        match = _JSON_OBJECT_RE.search(content)
        if match is None:
            raise ParseError("Could not parse AI response")
        try:
            payload = json.loads(match.group(0))
        except ValueError as exc:
            raise ParseError("Invalid JSON in response") from exc
        if not isinstance(payload, Mapping) or not payload:
            raise ParseError("Invalid JSON in response")
        try:
            score = float(payload.get("spam_score", 0) or 0)
        except (TypeError, ValueError) as exc:
            raise ParseError("spam_score is not numeric") from exc
        return ModerationResult(
            score=max(0.0, min(1.0, score)),
            is_spam=_as_flag(payload.get("is_spam", False)),
            reason=str(payload.get("reasoning", "") or "")[:500],
            confidence=str(payload.get("confidence") or "low"),
            detected_language=str(payload.get("detected_language") or "unknown"),
            method=self.mode,
        )
