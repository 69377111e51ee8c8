"""Writes verdicts and correction events to the spam log."""

from __future__ import annotations

import logging
from typing import Any, Optional

from formguard.obs import metrics as obs_metrics
from formguard.spam.domain.log_store import LogStore
from formguard.spam.domain.models import AmbientContext, Verdict, VerdictAction
from formguard.spam.domain.strikes import StrikeLedger

logger = logging.getLogger(__name__)

ACTION_REJECTED = "rejected"
ACTION_MARKED = "marked"
ACTION_SOFT_WARNING = "soft_warning"
ACTION_CORRECTED = "corrected_warning"
ACTION_ALLOWED = "allowed"


def action_taken(verdict: Verdict) -> str:
    if verdict.action is VerdictAction.BLOCK:
        return ACTION_MARKED if verdict.block_action == "mark" else ACTION_REJECTED
    if verdict.action is VerdictAction.SOFT_WARNING:
        return ACTION_SOFT_WARNING
    return ACTION_ALLOWED


class VerdictRecorder:
    """Persists evaluation outcomes; losing a log write never fails a request."""

    def __init__(
        self,
        log_store: LogStore,
        *,
        ledger: StrikeLedger,
        log_all_submissions: bool = False,
    ) -> None:
        self._log_store = log_store
        self._ledger = ledger
        self._log_all = log_all_submissions

    async def record(
        self,
        verdict: Verdict,
        *,
        form_id: str,
        submitter_key: str,
        context: AmbientContext | None = None,
    ) -> Optional[int]:
        action = action_taken(verdict)
        if action == ACTION_ALLOWED and not self._log_all:
            return None
        methods = verdict.detection_methods()
        details: dict[str, Any] = verdict.evidence.as_dict()
        details["reasons"] = verdict.reasons
        return await self._write(
            form_id=form_id,
            submitter_key=submitter_key,
            content_hash=verdict.content_hash,
            score=verdict.score,
            method=", ".join(methods) if methods else "none",
            details=details,
            action=action,
            context=context,
        )

    async def record_correction(
        self,
        verdict: Verdict,
        *,
        form_id: str,
        submitter_key: str,
        context: AmbientContext | None = None,
    ) -> Optional[int]:
        """Log a successful resubmission after a soft warning and forgive the strike."""

        await self._ledger.clear(str(form_id), submitter_key)
        return await self._write(
            form_id=form_id,
            submitter_key=submitter_key,
            content_hash=verdict.content_hash,
            score=verdict.score,
            method="correction",
            details={"previous_strikes": verdict.strikes, "reason": "Submission corrected after warning"},
            action=ACTION_CORRECTED,
            context=context,
        )

    async def _write(
        self,
        *,
        form_id: str,
        submitter_key: str,
        content_hash: str,
        score: float,
        method: str,
        details: dict[str, Any],
        action: str,
        context: AmbientContext | None,
    ) -> Optional[int]:
        try:
            return await self._log_store.insert(
                str(form_id),
                content_hash,
                score,
                method,
                details,
                action,
                submitter_key=submitter_key,
                user_agent=context.user_agent if context else None,
                locale=context.locale if context else None,
            )
        except Exception:
            logger.exception("spam log write failed", extra={"action": action})
            obs_metrics.LOG_WRITE_FAILURES.inc()
            return None
