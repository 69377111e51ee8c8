import json

import httpx
import pytest

from formguard.spam.domain.errors import ConfigError, RateLimitError, ServiceError
from formguard.spam.domain.moderation_client import ModerationClient, ModerationRateLimiter, build_text
from formguard.spam.domain.models import Submission


class Recorder:
    """Mock transport handler that replays canned responses and keeps requests."""

    def __init__(self, response=None, *, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


def _client(handler, **kwargs) -> ModerationClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("api_key", "sk-test")
    return ModerationClient(http, **kwargs)


def _chat_response(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


@pytest.mark.asyncio
async def test_moderation_mode_parses_category_scores() -> None:
    handler = Recorder(
        httpx.Response(
            200,
            json={"results": [{"flagged": True, "category_scores": {"harassment": 0.91, "violence": 0.02}}]},
        )
    )
    client = _client(handler, model="moderation")

    result = await client.classify("some text")

    assert client.mode == "moderation"
    assert result.score == pytest.approx(0.91)
    assert result.is_spam
    assert result.categories == ("harassment",)
    assert not result.error
    request = handler.requests[0]
    assert request.url.path.endswith("/moderations")
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert json.loads(request.content)["model"] == "omni-moderation-latest"


@pytest.mark.asyncio
async def test_moderation_mode_safe_content() -> None:
    handler = Recorder(httpx.Response(200, json={"results": [{"flagged": False, "category_scores": {"spam": 0.1}}]}))

    result = await _client(handler).classify("hello")

    assert result.score == pytest.approx(0.1)
    assert not result.is_spam
    assert result.reason == "Content appears safe"


@pytest.mark.asyncio
async def test_chat_mode_extracts_json_from_prose() -> None:
    content = 'Sure! {"spam_score": 0.82, "is_spam": true, "reasoning": "SEO pitch", "confidence": "high", "detected_language": "en"} done'
    handler = Recorder(_chat_response(content))
    client = _client(handler, model="gpt-4o-mini")

    result = await client.classify("text", "de")

    assert client.mode == "chat"
    assert result.score == pytest.approx(0.82)
    assert result.is_spam
    assert result.reason == "SEO pitch"
    assert result.confidence == "high"
    body = json.loads(handler.requests[0].content)
    assert body["model"] == "gpt-4o-mini"
    assert "expected language: German" in body["messages"][1]["content"]


@pytest.mark.asyncio
@pytest.mark.parametrize(("answer", "expected"), [('"false"', False), ('"no"', False), ('"True"', True), ("0", False)])
async def test_chat_mode_parses_string_flags(answer: str, expected: bool) -> None:
    content = '{"spam_score": 0.3, "is_spam": ' + answer + ', "reasoning": "ok"}'
    client = _client(Recorder(_chat_response(content)), model="gpt-4o-mini")

    result = await client.classify("text", "en")

    assert result.is_spam is expected


@pytest.mark.asyncio
async def test_unknown_chat_model_falls_back_to_default() -> None:
    client = _client(Recorder(_chat_response("{}")), model="some-other-model")

    assert client.model == "gpt-4o-mini"
    assert client.timeout == 45.0


@pytest.mark.asyncio
async def test_chat_mode_unparseable_output_scores_zero_with_error() -> None:
    handler = Recorder(_chat_response("I cannot help with that."))

    result = await _client(handler, model="gpt-4o").classify("text")

    assert result.error
    assert result.score == 0.0
    assert not result.is_spam


@pytest.mark.asyncio
async def test_non_2xx_raises_service_error() -> None:
    handler = Recorder(httpx.Response(500, json={"error": {"message": "upstream exploded"}}))

    with pytest.raises(ServiceError) as excinfo:
        await _client(handler).classify("text")

    assert excinfo.value.status_code == 500
    assert "upstream exploded" in str(excinfo.value)


@pytest.mark.asyncio
async def test_missing_results_raises_service_error() -> None:
    handler = Recorder(httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(ServiceError):
        await _client(handler).classify("text")


@pytest.mark.asyncio
async def test_missing_key_raises_config_error() -> None:
    handler = Recorder(httpx.Response(200, json={}))
    client = _client(handler, api_key=None)

    assert not client.configured
    with pytest.raises(ConfigError):
        await client.classify("text")
    assert handler.requests == []


@pytest.mark.asyncio
async def test_assess_degrades_failures() -> None:
    timeout = Recorder(error=httpx.ReadTimeout("slow"))
    broken = Recorder(httpx.Response(503, text="unavailable"))

    timed_out = await _client(timeout).assess("text")
    failed = await _client(broken).assess("text")
    skipped = await _client(broken, api_key="").assess("text")

    assert timed_out.error and timed_out.score == 0.5
    assert failed.error and failed.score == 0.5
    assert skipped.skipped and skipped.score == 0.0


@pytest.mark.asyncio
async def test_rate_limiter_budget() -> None:
    limiter = ModerationRateLimiter(limit=2, window_seconds=60)

    assert await limiter.acquire("203.0.113.7") == 1
    assert await limiter.acquire("203.0.113.7") == 2
    with pytest.raises(RateLimitError) as excinfo:
        await limiter.acquire("203.0.113.7")
    assert excinfo.value.status_code == 429
    assert await limiter.acquire("198.51.100.2") == 1


@pytest.mark.asyncio
async def test_rate_limited_call_returns_neutral_without_request() -> None:
    handler = Recorder(httpx.Response(200, json={"results": [{"flagged": False}]}))
    client = _client(handler, rate_limiter=ModerationRateLimiter(limit=1, window_seconds=60))

    first = await client.classify("text", submitter_key="203.0.113.7")
    second = await client.classify("text", submitter_key="203.0.113.7")

    assert not first.error
    assert second.error
    assert second.score == 0.5
    assert len(handler.requests) == 1


def test_build_text_joins_values() -> None:
    submission = Submission.from_values({"name": "Jane", "message": "Hello there"})

    assert build_text(submission) == "Jane\nHello there"
