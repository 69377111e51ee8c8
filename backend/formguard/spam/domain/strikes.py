"""Per-submitter strike ledger with TTL expiry."""

from __future__ import annotations

import asyncio
import hashlib
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from formguard.obs import metrics as obs_metrics


@dataclass(slots=True, frozen=True)
class StrikeState:
    count: int
    expires_at: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self.count > 0

    def as_dict(self) -> dict[str, object]:
        return {
            "count": self.count,
            "active": self.active,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


class StrikeStore(Protocol):
    """Atomic counter store; expired keys read as zero."""

    async def get(self, key: str) -> int:
        ...

    async def increment_with_ttl(self, key: str, ttl_seconds: int) -> int:
        ...

    async def clear(self, key: str) -> None:
        ...

    async def ttl(self, key: str) -> Optional[int]:
        ...


class InMemoryStrikeStore(StrikeStore):
    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[int, float]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _live(self, key: str) -> tuple[int, float] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            self._entries.pop(key, None)
            return None
        return entry

    async def get(self, key: str) -> int:
        async with self._lock:
            entry = self._live(key)
            return entry[0] if entry else 0

    async def increment_with_ttl(self, key: str, ttl_seconds: int) -> int:
        async with self._lock:
            entry = self._live(key)
            count = (entry[0] if entry else 0) + 1
            self._entries[key] = (count, self._clock() + ttl_seconds)
            return count

    async def clear(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def ttl(self, key: str) -> Optional[int]:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            return max(0, int(round(entry[1] - self._clock())))


class StrikeLedger:
    """Keys strikes by (form, submitter) and applies the strike TTL."""

    def __init__(
        self,
        store: StrikeStore,
        *,
        ttl: timedelta = timedelta(minutes=15),
        namespace: str = "spam:strike",
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._namespace = namespace

    @property
    def ttl_seconds(self) -> int:
        return max(1, int(self._ttl.total_seconds()))

    def key(self, form_id: str, submitter_key: str) -> str:
        digest = hashlib.sha256(submitter_key.encode("utf-8")).hexdigest()[:32]
        return f"{self._namespace}:{form_id}:{digest}"

    async def current(self, form_id: str, submitter_key: str) -> StrikeState:
        key = self.key(form_id, submitter_key)
        count = await self._store.get(key)
        if count <= 0:
            return StrikeState(count=0)
        remaining = await self._store.ttl(key)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=remaining) if remaining is not None else None
        return StrikeState(count=count, expires_at=expires_at)

    async def record(self, form_id: str, submitter_key: str) -> StrikeState:
        count = await self._store.increment_with_ttl(self.key(form_id, submitter_key), self.ttl_seconds)
        obs_metrics.STRIKES_RECORDED.inc()
        return StrikeState(count=count, expires_at=datetime.now(timezone.utc) + self._ttl)

    async def clear(self, form_id: str, submitter_key: str) -> None:
        await self._store.clear(self.key(form_id, submitter_key))
