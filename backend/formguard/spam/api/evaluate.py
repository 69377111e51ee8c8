"""HTTP endpoints for evaluating form submissions and managing strikes."""

from __future__ import annotations

import logging
from typing import Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from formguard.api.ops import require_admin
from formguard.spam.domain.container import get_engine, get_engine_settings, get_recorder
from formguard.spam.domain.models import AmbientContext, DetectorReport, FormField, Submission, Verdict
from formguard.spam.domain.strikes import StrikeState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/spam/v1", tags=["spam"])


class FieldIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=128)
    type: str = Field(default="text", max_length=32)
    value: Union[str, list[str], None] = None
    label: Optional[str] = Field(default=None, max_length=255)

    def to_domain(self) -> FormField:
        return FormField(field_id=self.id, value=self.value, input_type=self.type, label=self.label)


class ContextIn(BaseModel):
    elapsed_seconds: Optional[float] = Field(default=None, ge=0)
    rendered_at: Optional[float] = Field(default=None, ge=0)
    submitted_at: Optional[float] = Field(default=None, ge=0)
    user_agent: Optional[str] = Field(default=None, max_length=1024)
    referrer: Optional[str] = Field(default=None, max_length=2048)
    locale: Optional[str] = Field(default=None, max_length=16)

    def to_domain(self) -> AmbientContext:
        return AmbientContext(
            elapsed_seconds=self.elapsed_seconds,
            rendered_at=self.rendered_at,
            submitted_at=self.submitted_at,
            user_agent=self.user_agent,
            referrer=self.referrer,
            locale=self.locale,
        )


class EvaluateIn(BaseModel):
    form_id: str = Field(..., min_length=1, max_length=64)
    submitter_key: str = Field(..., min_length=1, max_length=256)
    fields: list[FieldIn] = Field(..., max_length=200)
    context: Optional[ContextIn] = None


class SignalOut(BaseModel):
    detector: str
    score: float
    soft_warning: bool
    reasons: list[str]

    @classmethod
    def from_domain(cls, report: DetectorReport) -> "SignalOut":
        return cls(
            detector=report.detector,
            score=report.normalized,
            soft_warning=report.soft_warning,
            reasons=report.reasons,
        )


class VerdictOut(BaseModel):
    action: str
    is_spam: bool
    score: float
    strikes: int
    threshold: float
    block_action: str
    reasons: list[str]
    signals: list[SignalOut]
    moderation_invoked: bool
    duplicate: bool
    corrected: bool = False
    log_id: Optional[int] = None

    @classmethod
    def from_domain(cls, verdict: Verdict, *, corrected: bool = False, log_id: Optional[int] = None) -> "VerdictOut":
        return cls(
            action=verdict.action.value,
            is_spam=verdict.is_spam,
            score=round(verdict.score, 4),
            strikes=0 if corrected else verdict.strikes,
            threshold=verdict.threshold,
            block_action=verdict.block_action,
            reasons=verdict.reasons,
            signals=[SignalOut.from_domain(report) for report in verdict.evidence.signals.values() if report.detected],
            moderation_invoked=verdict.evidence.moderation_invoked,
            duplicate=verdict.evidence.duplicate,
            corrected=corrected,
            log_id=log_id,
        )


class StrikeOut(BaseModel):
    form_id: str
    count: int
    active: bool
    expires_at: Optional[str] = None

    @classmethod
    def from_domain(cls, form_id: str, state: StrikeState) -> "StrikeOut":
        return cls(
            form_id=form_id,
            count=state.count,
            active=state.active,
            expires_at=state.expires_at.isoformat() if state.expires_at else None,
        )


class ClearStrikesIn(BaseModel):
    form_id: str = Field(..., min_length=1, max_length=64)
    submitter_key: str = Field(..., min_length=1, max_length=256)
    reason: Literal["correction", "admin_reset"] = "correction"


@router.post("/evaluate", response_model=VerdictOut)
async def evaluate_submission(payload: EvaluateIn) -> VerdictOut:
    engine = get_engine()
    recorder = get_recorder()
    submission = Submission.build(
        [item.to_domain() for item in payload.fields],
        exclude_hidden=get_engine_settings().exclude_hidden_fields,
    )
    context = payload.context.to_domain() if payload.context else None
    verdict = await engine.evaluate(
        submission,
        form_id=payload.form_id,
        submitter_key=payload.submitter_key,
        context=context,
    )
    corrected = False
    log_id: Optional[int] = None
    if verdict.is_correction:
        log_id = await recorder.record_correction(
            verdict,
            form_id=payload.form_id,
            submitter_key=payload.submitter_key,
            context=context,
        )
        corrected = True
    recorded = await recorder.record(
        verdict,
        form_id=payload.form_id,
        submitter_key=payload.submitter_key,
        context=context,
    )
    return VerdictOut.from_domain(verdict, corrected=corrected, log_id=recorded or log_id)


@router.post("/strikes/clear", response_model=StrikeOut)
async def clear_strikes(payload: ClearStrikesIn, _: None = Depends(require_admin)) -> StrikeOut:
    logger.info("strike cleared", extra={"reason": payload.reason})
    engine = get_engine()
    await engine.clear_strikes(payload.form_id, payload.submitter_key)
    state = await engine.strike_state(payload.form_id, payload.submitter_key)
    return StrikeOut.from_domain(payload.form_id, state)


@router.get("/strikes", response_model=StrikeOut)
async def get_strikes(
    *,
    form_id: str = Query(..., min_length=1, max_length=64),
    submitter_key: str = Query(..., min_length=1, max_length=256),
    _: None = Depends(require_admin),
) -> StrikeOut:
    state = await get_engine().strike_state(form_id, submitter_key)
    if not state.active:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="no_active_strike")
    return StrikeOut.from_domain(form_id, state)
