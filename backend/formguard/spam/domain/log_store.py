"""Spam log persistence contract and the in-memory implementation."""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence


def hash_submitter(submitter_key: str) -> str:
    """Submitter keys are only stored hashed."""

    return hashlib.sha256(submitter_key.encode("utf-8")).hexdigest()[:32]


@dataclass(slots=True)
class LogEntry:
    id: int
    form_id: str
    submitter_hash: str
    content_hash: str
    spam_score: float
    detection_method: str
    detection_details: Mapping[str, Any]
    action_taken: str
    user_agent: Optional[str] = None
    site_locale: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LogStore(Protocol):
    async def insert(
        self,
        form_id: str,
        content_hash: str,
        score: float,
        method: str,
        details: Mapping[str, Any],
        action_taken: str,
        *,
        submitter_key: str,
        user_agent: Optional[str] = None,
        locale: Optional[str] = None,
    ) -> int:
        ...

    async def find_recent(self, form_id: str, submitter_key: str, since: datetime) -> Sequence[str]:
        ...


class InMemoryLogStore(LogStore):
    """Process-local log for single-node and test use.

    Entries older than `retention` are pruned on insert and at most
    `max_entries` are kept, so lookbacks longer than `retention` only see
    what is still held.
    """

    def __init__(
        self,
        *,
        retention: timedelta = timedelta(hours=24),
        max_entries: int = 10_000,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.entries: list[LogEntry] = []
        self._retention = retention
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._next_id = 1
        self._lock = asyncio.Lock()

    def _prune(self, now: datetime) -> None:
        cutoff = now - self._retention
        # entries are appended in time order
        stale = 0
        for entry in self.entries:
            if entry.created_at >= cutoff:
                break
            stale += 1
        if stale:
            del self.entries[:stale]

    async def insert(
        self,
        form_id: str,
        content_hash: str,
        score: float,
        method: str,
        details: Mapping[str, Any],
        action_taken: str,
        *,
        submitter_key: str,
        user_agent: Optional[str] = None,
        locale: Optional[str] = None,
    ) -> int:
        async with self._lock:
            now = self._clock()
            self._prune(now)
            entry = LogEntry(
                id=self._next_id,
                form_id=str(form_id),
                submitter_hash=hash_submitter(submitter_key),
                content_hash=content_hash,
                spam_score=float(score),
                detection_method=method,
                detection_details=dict(details),
                action_taken=action_taken,
                user_agent=user_agent,
                site_locale=locale,
                created_at=now,
            )
            self._next_id += 1
            self.entries.append(entry)
            if len(self.entries) > self._max_entries:
                del self.entries[: len(self.entries) - self._max_entries]
            return entry.id

    async def find_recent(self, form_id: str, submitter_key: str, since: datetime) -> Sequence[str]:
        submitter_hash = hash_submitter(submitter_key)
        return [
            entry.content_hash
            for entry in reversed(self.entries)
            if entry.form_id == str(form_id) and entry.submitter_hash == submitter_hash and entry.created_at >= since
        ]
