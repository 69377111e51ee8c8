"""Error taxonomy for the spam decision engine."""

from __future__ import annotations


class SpamEngineError(Exception):
    """Base class for engine errors that callers may want to catch."""


class ServiceError(SpamEngineError):
    """External moderation call failed (network, timeout, non-2xx, bad envelope)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigError(ServiceError):
    """Moderation is enabled but not usable as configured (e.g. no API key)."""


class RateLimitError(ServiceError):
    """The per-submitter moderation budget is exhausted."""

    def __init__(self, message: str, *, limit: int, count: int) -> None:
        super().__init__(message, status_code=429)
        self.limit = limit
        self.count = count


class ParseError(SpamEngineError):
    """A detector or moderation payload could not be interpreted."""
