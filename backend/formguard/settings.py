"""Settings for the formguard service and spam decision engine."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
    postgres_url: Optional[str] = _env_field(None, "POSTGRES_URL", "DATABASE_URL")
    postgres_max_pool_size: int = _env_field(5, "POSTGRES_MAX_POOL_SIZE")
    postgres_command_timeout: float = _env_field(5.0, "POSTGRES_COMMAND_TIMEOUT")

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
    obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN", "ADMIN_TOKEN")
    service_name: str = _env_field("formguard", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

    # Spam engine switches
    spam_enabled: bool = _env_field(True, "SPAM_ENABLED")
    pattern_check_enabled: bool = _env_field(True, "SPAM_PATTERN_CHECK_ENABLED")
    time_check_enabled: bool = _env_field(True, "SPAM_TIME_CHECK_ENABLED")
    language_check_enabled: bool = _env_field(False, "SPAM_LANGUAGE_CHECK_ENABLED")
    duplicate_check_enabled: bool = _env_field(True, "SPAM_DUPLICATE_CHECK_ENABLED")
    openai_enabled: bool = _env_field(False, "SPAM_OPENAI_ENABLED")
    openai_api_key: Optional[str] = _env_field(None, "OPENAI_API_KEY", "SPAM_OPENAI_KEY")
    openai_model: str = _env_field("omni-moderation-latest", "SPAM_OPENAI_MODEL")
    openai_base_url: str = _env_field("https://api.openai.com/v1", "SPAM_OPENAI_BASE_URL")

    # Spam engine tuning
    ai_threshold: float = _env_field(0.7, "SPAM_AI_THRESHOLD")
    min_submission_time: int = _env_field(3, "SPAM_MIN_SUBMISSION_TIME")
    duplicate_check_timeframe: int = _env_field(24, "SPAM_DUPLICATE_CHECK_TIMEFRAME")
    block_action: str = _env_field("reject", "SPAM_BLOCK_ACTION")
    exclude_hidden_fields: bool = _env_field(True, "SPAM_EXCLUDE_HIDDEN_FIELDS")
    hard_spam_floor: int = _env_field(30, "SPAM_HARD_SPAM_FLOOR")
    strike_ttl_seconds: int = _env_field(900, "SPAM_STRIKE_TTL_SECONDS")
    moderation_rate_limit: int = _env_field(60, "SPAM_MODERATION_RATE_LIMIT")
    moderation_rate_window_seconds: int = _env_field(3600, "SPAM_MODERATION_RATE_WINDOW_SECONDS")
    moderation_timeout_seconds: Optional[float] = _env_field(None, "SPAM_MODERATION_TIMEOUT_SECONDS")
    expected_language: str = _env_field("en", "SPAM_EXPECTED_LANGUAGE")
    site_url: Optional[str] = _env_field(None, "SITE_URL")
    policy_path: Optional[str] = _env_field(None, "SPAM_POLICY_PATH")
    log_all_submissions: bool = _env_field(False, "SPAM_LOG_ALL_SUBMISSIONS")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("obs_log_level", mode="before")
    def _normalise_level(cls, value):  # type: ignore[override]
        return str(value or "INFO").upper()

    @field_validator("block_action", mode="before")
    def _normalise_block_action(cls, value):  # type: ignore[override]
        text = str(value or "").strip().lower()
        return text if text in {"mark", "reject"} else "reject"


settings = Settings()

