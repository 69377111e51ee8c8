"""Lightweight service container for the spam decision engine."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

import asyncpg
import httpx
from redis.asyncio import Redis

from formguard.infra.redis import RedisProxy, redis_client
from formguard.settings import Settings, settings
from formguard.spam.domain.config import EngineSettings
from formguard.spam.domain.duplicates import DuplicateDetector
from formguard.spam.domain.engine import DecisionEngine, ModerationBackend
from formguard.spam.domain.log_store import InMemoryLogStore, LogStore
from formguard.spam.domain.moderation_client import ModerationClient, ModerationRateLimiter
from formguard.spam.domain.policy import DetectionPolicy, load_policy
from formguard.spam.domain.recorder import VerdictRecorder
from formguard.spam.domain.strikes import StrikeLedger, StrikeStore
from formguard.spam.infra.log_repo import PostgresLogStore
from formguard.spam.infra.strike_repo import RedisStrikeStore

_redis_proxy: RedisProxy = redis_client
_engine_settings: EngineSettings = EngineSettings.from_settings(settings)
_policy: DetectionPolicy = load_policy(settings.policy_path)
_log_store: LogStore = InMemoryLogStore(retention=timedelta(hours=_engine_settings.duplicate_check_timeframe))
_strike_store: StrikeStore = RedisStrikeStore(_redis_proxy)
_ledger = StrikeLedger(_strike_store, ttl=timedelta(seconds=_engine_settings.strike_ttl_seconds))
_http_client: httpx.AsyncClient | None = None
_moderation: ModerationBackend | None = None
_engine: DecisionEngine | None = None
_recorder: VerdictRecorder | None = None


def _build_moderation(app_settings: Settings, redis_proxy: RedisProxy) -> ModerationClient:
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient()
    limiter = ModerationRateLimiter(
        limit=app_settings.moderation_rate_limit,
        window_seconds=app_settings.moderation_rate_window_seconds,
        redis=redis_proxy,
    )
    return ModerationClient(
        _http_client,
        api_key=app_settings.openai_api_key,
        model=app_settings.openai_model,
        base_url=app_settings.openai_base_url,
        timeout=app_settings.moderation_timeout_seconds,
        rate_limiter=limiter,
    )


def configure(
    *,
    engine_settings: Optional[EngineSettings] = None,
    policy: Optional[DetectionPolicy] = None,
    log_store: Optional[LogStore] = None,
    strike_store: Optional[StrikeStore] = None,
    moderation: Optional[ModerationBackend] = None,
    redis_proxy: Optional[RedisProxy] = None,
) -> None:
    """Rebuild the engine graph; omitted collaborators keep their current instance."""

    global _redis_proxy, _engine_settings, _policy, _log_store, _strike_store, _ledger, _moderation, _engine, _recorder
    if redis_proxy is not None:
        _redis_proxy = redis_proxy
    if engine_settings is not None:
        _engine_settings = engine_settings
    if policy is not None:
        _policy = policy
    if log_store is not None:
        _log_store = log_store
    if strike_store is not None:
        _strike_store = strike_store
    if moderation is not None:
        _moderation = moderation
    elif _moderation is None and _engine_settings.openai_enabled:
        _moderation = _build_moderation(settings, _redis_proxy)

    _ledger = StrikeLedger(_strike_store, ttl=timedelta(seconds=_engine_settings.strike_ttl_seconds))
    _engine = DecisionEngine(
        _engine_settings,
        strikes=_ledger,
        policy=_policy,
        duplicates=DuplicateDetector(_log_store) if _engine_settings.duplicate_check_enabled else None,
        moderation=_moderation,
    )
    _recorder = VerdictRecorder(
        _log_store,
        ledger=_ledger,
        log_all_submissions=_engine_settings.log_all_submissions,
    )


def configure_postgres(pool: asyncpg.Pool, redis_conn: Redis | RedisProxy) -> None:
    proxy = redis_conn if isinstance(redis_conn, RedisProxy) else RedisProxy(redis_conn)
    configure(
        log_store=PostgresLogStore(pool),
        strike_store=RedisStrikeStore(proxy),
        redis_proxy=proxy,
    )


def get_engine() -> DecisionEngine:
    if _engine is None:
        configure()
    assert _engine is not None
    return _engine


def get_recorder() -> VerdictRecorder:
    if _recorder is None:
        configure()
    assert _recorder is not None
    return _recorder


def get_strike_ledger() -> StrikeLedger:
    return _ledger


def get_log_store() -> LogStore:
    return _log_store


def get_engine_settings() -> EngineSettings:
    return _engine_settings


async def aclose() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def reset() -> None:
    """Return to in-memory logging with a fresh graph; used by tests."""

    global _engine_settings, _policy, _log_store, _strike_store, _moderation, _redis_proxy
    _redis_proxy = redis_client
    _engine_settings = EngineSettings.from_settings(settings)
    _policy = load_policy(settings.policy_path)
    _log_store = InMemoryLogStore(retention=timedelta(hours=_engine_settings.duplicate_check_timeframe))
    _strike_store = RedisStrikeStore(_redis_proxy)
    _moderation = None
    configure()
