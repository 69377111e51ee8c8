"""Behavioral signals derived from the request context."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from formguard.obs import metrics as obs_metrics
from formguard.spam.domain.models import AmbientContext, DetectorReport, DetectorResult, Submission
from formguard.spam.domain.policy import DetectionPolicy

logger = logging.getLogger(__name__)

DETECTOR_NAME = "behavior"


def detect_language(text: str, language_words) -> Optional[str]:
    """Guess the language of ``text`` by counting common words; None when unsure."""

    padded = f" {text.lower()} "
    scores: dict[str, int] = {}
    for code, words in language_words.items():
        scores[code] = sum(padded.count(f" {word} ") for word in words)
    if not scores or max(scores.values()) < 2:
        return None
    return max(scores.items(), key=lambda item: item[1])[0]


class BehaviorDetector:
    """Timing, language, user agent and referrer checks."""

    name = DETECTOR_NAME

    def __init__(
        self,
        policy: DetectionPolicy | None = None,
        *,
        min_submission_time: int = 3,
        expected_language: str = "en",
        site_url: Optional[str] = None,
        time_check: bool = True,
        language_check: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.policy = policy or DetectionPolicy.default()
        self.min_submission_time = min_submission_time
        self.expected_language = (expected_language or "en")[:2].lower()
        self.site_url = site_url.rstrip("/") if site_url else None
        self.time_check = time_check
        self.language_check = language_check
        self._clock = clock

    def analyze(self, submission: Submission, context: AmbientContext | None = None) -> DetectorReport:
        context = context or AmbientContext()
        checks: list[tuple[str, Callable[[], Optional[DetectorResult]]]] = []
        if self.time_check:
            checks.append(("submission_time", lambda: self.check_submission_time(context)))
        if self.language_check:
            checks.append(("language", lambda: self.check_language(submission, context)))
        checks.extend(
            [
                ("user_agent", lambda: self.check_user_agent(context)),
                ("referrer", lambda: self.check_referrer(context)),
                ("spam_referrer", lambda: self.check_spam_referrer(context)),
            ]
        )
        results: list[DetectorResult] = []
        for name, check in checks:
            try:
                result = check()
            except Exception:
                logger.exception("behavior check failed", extra={"check": name})
                obs_metrics.DETECTOR_FAILURES.labels(detector=DETECTOR_NAME, check=name).inc()
                continue
            if result is not None and result.detected:
                results.append(result)
        return DetectorReport(detector=DETECTOR_NAME, results=tuple(results))

    def check_submission_time(self, context: AmbientContext) -> Optional[DetectorResult]:
        elapsed = context.elapsed(now=self._clock())
        if elapsed is None:
            # without a render timestamp the check cannot run
            return None
        if elapsed < 1:
            return DetectorResult.hit("submission_time", 70, "Form submitted in less than 1 second", elapsed=round(elapsed, 3))
        if elapsed < self.min_submission_time:
            return DetectorResult.hit(
                "submission_time",
                50,
                f"Form submitted too quickly ({int(elapsed)} seconds)",
                elapsed=round(elapsed, 3),
                minimum=self.min_submission_time,
            )
        return None

    def check_language(self, submission: Submission, context: AmbientContext) -> Optional[DetectorResult]:
        expected = context.language or self.expected_language
        content = " ".join(value for value in submission.values.values() if len(value) > 10)
        if not content:
            return None
        detected = detect_language(content, self.policy.language_words)
        if detected is None or detected == expected:
            return None
        return DetectorResult.hit(
            "language",
            20,
            f"Language mismatch (expected: {expected}, detected: {detected})",
            expected=expected,
            detected=detected,
        )

    def check_user_agent(self, context: AmbientContext) -> Optional[DetectorResult]:
        agent = (context.user_agent or "").strip()
        if not agent:
            return DetectorResult.hit("user_agent", 30, "No user agent provided")
        lowered = agent.lower()
        for signature in self.policy.bot_signatures:
            if signature in lowered:
                return DetectorResult.hit("user_agent", 40, f"Bot user agent detected ({signature})", signature=signature)
        return None

    def check_referrer(self, context: AmbientContext) -> Optional[DetectorResult]:
        referrer = (context.referrer or "").strip()
        if not referrer:
            return DetectorResult.hit("referrer", 10, "No referrer provided")
        if self.site_url and not referrer.lower().startswith(self.site_url.lower()):
            return DetectorResult.hit("referrer", 15, "External referrer")
        return None

    def check_spam_referrer(self, context: AmbientContext) -> Optional[DetectorResult]:
        referrer = (context.referrer or "").strip().lower()
        if not referrer:
            return None
        for pattern, description in self.policy.spam_referrers.items():
            if pattern.lower() in referrer:
                return DetectorResult.hit("spam_referrer", 60, f"Spam referrer detected: {description}", pattern=pattern)
        for pattern in self.policy.suspicious_referrer_patterns:
            if pattern in referrer:
                return DetectorResult.hit(
                    "spam_referrer",
                    40,
                    f'Suspicious referrer pattern: contains "{pattern}"',
                    pattern=pattern,
                )
        return None
