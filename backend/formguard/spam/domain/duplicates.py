"""Exact-match duplicate submission detection."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from formguard.spam.domain.log_store import LogStore
from formguard.spam.domain.models import Submission

logger = logging.getLogger(__name__)


def content_hash(submission: Submission) -> str:
    """Stable digest of the grouped, normalized field values."""

    canonical = json.dumps(submission.semantic_payload(), sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class DuplicateDetector:
    """Presence check of a content hash in the submitter's recent log history.

    Near-duplicates are not detected.
    """

    name = "duplicate"

    def __init__(
        self,
        log_store: LogStore,
        *,
        lookback: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._log_store = log_store
        self._lookback = lookback
        self._clock = clock

    async def check(
        self,
        submission: Submission,
        form_id: str,
        submitter_key: str,
        lookback_window: Optional[timedelta] = None,
        *,
        digest: Optional[str] = None,
    ) -> bool:
        if submission.is_blank:
            return False
        digest = digest or content_hash(submission)
        since = self._clock() - (lookback_window or self._lookback)
        previous = await self._log_store.find_recent(form_id, submitter_key, since)
        return digest in set(previous)
