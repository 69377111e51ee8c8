"""PostgreSQL persistence for the spam log."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

import asyncpg

from formguard.spam.domain.log_store import LogStore, hash_submitter

SCHEMA = """
CREATE TABLE IF NOT EXISTS spam_log (
    id BIGSERIAL PRIMARY KEY,
    form_id TEXT NOT NULL,
    submitter_hash TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    spam_score DOUBLE PRECISION NOT NULL,
    detection_method TEXT NOT NULL,
    detection_details JSONB NOT NULL DEFAULT '{}'::jsonb,
    action_taken TEXT NOT NULL,
    user_agent TEXT,
    site_locale TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS spam_log_lookup_idx ON spam_log (form_id, submitter_hash, created_at DESC);
"""


class PostgresLogStore(LogStore):
    """Stores evaluation outcomes in spam_log."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        await self._pool.execute(SCHEMA)

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
        row = await self._pool.fetchrow(
            """
            INSERT INTO spam_log (
                form_id, submitter_hash, content_hash, spam_score, detection_method,
                detection_details, action_taken, user_agent, site_locale
            )
            VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8, $9)
            RETURNING id
            """,
            str(form_id),
            hash_submitter(submitter_key),
            content_hash,
            float(score),
            method,
            json.dumps(dict(details), default=str),
            action_taken,
            user_agent,
            locale,
        )
        if row is None:  # pragma: no cover - asyncpg always returns a row for RETURNING
            raise RuntimeError("Failed to insert spam log entry")
        return int(row["id"])

    async def find_recent(self, form_id: str, submitter_key: str, since: datetime) -> Sequence[str]:
        rows = await self._pool.fetch(
            """
            SELECT content_hash
            FROM spam_log
            WHERE form_id = $1 AND submitter_hash = $2 AND created_at >= $3
            ORDER BY created_at DESC
            """,
            str(form_id),
            hash_submitter(submitter_key),
            since,
        )
        return [str(row["content_hash"]) for row in rows]

