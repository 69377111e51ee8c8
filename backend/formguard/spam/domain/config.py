"""Immutable engine configuration snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

BLOCK_ACTIONS = ("mark", "reject")


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class EngineSettings:
    enabled: bool = True
    pattern_check_enabled: bool = True
    time_check_enabled: bool = True
    language_check_enabled: bool = False
    duplicate_check_enabled: bool = True
    openai_enabled: bool = False
    ai_threshold: float = 0.7
    min_submission_time: int = 3
    duplicate_check_timeframe: int = 24
    block_action: str = "reject"
    exclude_hidden_fields: bool = True
    hard_spam_floor: float = 30.0
    strike_ttl_seconds: int = 900
    expected_language: str = "en"
    site_url: Optional[str] = None
    log_all_submissions: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "ai_threshold", _clamp(float(self.ai_threshold), 0.0, 1.0))
        action = str(self.block_action or "").strip().lower()
        object.__setattr__(self, "block_action", action if action in BLOCK_ACTIONS else "reject")
        object.__setattr__(self, "min_submission_time", max(0, int(self.min_submission_time)))
        object.__setattr__(self, "duplicate_check_timeframe", max(1, int(self.duplicate_check_timeframe)))
        object.__setattr__(self, "strike_ttl_seconds", max(1, int(self.strike_ttl_seconds)))
        object.__setattr__(self, "hard_spam_floor", _clamp(float(self.hard_spam_floor), 0.0, 100.0))

    @property
    def threshold(self) -> float:
        return self.ai_threshold

    @property
    def behavior_enabled(self) -> bool:
        return self.time_check_enabled or self.language_check_enabled

    @staticmethod
    def from_settings(settings: Any) -> "EngineSettings":
        return EngineSettings(
            enabled=settings.spam_enabled,
            pattern_check_enabled=settings.pattern_check_enabled,
            time_check_enabled=settings.time_check_enabled,
            language_check_enabled=settings.language_check_enabled,
            duplicate_check_enabled=settings.duplicate_check_enabled,
            openai_enabled=settings.openai_enabled,
            ai_threshold=settings.ai_threshold,
            min_submission_time=settings.min_submission_time,
            duplicate_check_timeframe=settings.duplicate_check_timeframe,
            block_action=settings.block_action,
            exclude_hidden_fields=settings.exclude_hidden_fields,
            hard_spam_floor=settings.hard_spam_floor,
            strike_ttl_seconds=settings.strike_ttl_seconds,
            expected_language=settings.expected_language,
            site_url=settings.site_url,
            log_all_submissions=settings.log_all_submissions,
        )

    @staticmethod
    def from_mapping(config: Mapping[str, Any]) -> "EngineSettings":
        base = EngineSettings()
        return EngineSettings(
            enabled=_as_bool(config.get("enabled", config.get("spam_enabled")), base.enabled),
            pattern_check_enabled=_as_bool(config.get("pattern_check_enabled"), base.pattern_check_enabled),
            time_check_enabled=_as_bool(config.get("time_check_enabled"), base.time_check_enabled),
            language_check_enabled=_as_bool(config.get("language_check_enabled"), base.language_check_enabled),
            duplicate_check_enabled=_as_bool(config.get("duplicate_check_enabled"), base.duplicate_check_enabled),
            openai_enabled=_as_bool(config.get("openai_enabled"), base.openai_enabled),
            ai_threshold=float(config.get("ai_threshold", base.ai_threshold)),
            min_submission_time=int(config.get("min_submission_time", base.min_submission_time)),
            duplicate_check_timeframe=int(config.get("duplicate_check_timeframe", base.duplicate_check_timeframe)),
            block_action=str(config.get("block_action", base.block_action)),
            exclude_hidden_fields=_as_bool(config.get("exclude_hidden_fields"), base.exclude_hidden_fields),
            hard_spam_floor=float(config.get("hard_spam_floor", base.hard_spam_floor)),
            strike_ttl_seconds=int(config.get("strike_ttl_seconds", base.strike_ttl_seconds)),
            expected_language=str(config.get("expected_language", base.expected_language)),
            site_url=config.get("site_url", base.site_url),
            log_all_submissions=_as_bool(config.get("log_all_submissions"), base.log_all_submissions),
        )
