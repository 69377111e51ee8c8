"""Decision engine combining detector signals into a verdict."""

from __future__ import annotations

import logging
import math
import time
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Protocol

from formguard.obs import logging as obs_logging
from formguard.obs import metrics as obs_metrics
from formguard.spam.domain.behavior import BehaviorDetector
from formguard.spam.domain.config import EngineSettings
from formguard.spam.domain.duplicates import DuplicateDetector, content_hash
from formguard.spam.domain.log_store import hash_submitter
from formguard.spam.domain.models import (
    AggregateResult,
    AmbientContext,
    DetectorReport,
    DetectorResult,
    ModerationResult,
    Submission,
    Verdict,
    VerdictAction,
)
from formguard.spam.domain.moderation_client import build_text
from formguard.spam.domain.patterns import PatternDetector
from formguard.spam.domain.policy import DetectionPolicy
from formguard.spam.domain.strikes import StrikeLedger, StrikeState

logger = logging.getLogger(__name__)


class EvaluationStage(str, Enum):
    INIT = "init"
    CHEAP_CHECKS = "cheap_checks"
    MODERATION = "moderation"
    AGGREGATE = "aggregate"
    STRIKE_EVAL = "strike_eval"
    VERDICT = "verdict"


class ModerationBackend(Protocol):
    async def assess(
        self,
        text: str,
        expected_language: str = "en",
        *,
        submitter_key: Optional[str] = None,
    ) -> ModerationResult:
        ...


class DecisionEngine:
    """Runs the detectors for one submission and applies the strike policy.

    The engine holds no per-submission state; the strike ledger and the
    moderation rate limiter are the only shared mutable resources and both
    live in atomic counter stores.
    """

    def __init__(
        self,
        settings: EngineSettings,
        *,
        strikes: StrikeLedger,
        policy: DetectionPolicy | None = None,
        patterns: PatternDetector | None = None,
        behavior: BehaviorDetector | None = None,
        duplicates: DuplicateDetector | None = None,
        moderation: ModerationBackend | None = None,
    ) -> None:
        self.settings = settings
        self.policy = policy or DetectionPolicy.default()
        self._patterns = patterns or PatternDetector(self.policy)
        self._behavior = behavior or BehaviorDetector(
            self.policy,
            min_submission_time=settings.min_submission_time,
            expected_language=settings.expected_language,
            site_url=settings.site_url,
            time_check=settings.time_check_enabled,
            language_check=settings.language_check_enabled,
        )
        self._duplicates = duplicates
        self._moderation = moderation
        self._strikes = strikes

    @property
    def threshold(self) -> float:
        return self.settings.threshold

    async def evaluate(
        self,
        submission: Submission,
        *,
        form_id: str,
        submitter_key: str,
        context: AmbientContext | None = None,
    ) -> Verdict:
        tokens = obs_logging.bind_context(form_id=str(form_id), submitter=hash_submitter(submitter_key)[:12])
        try:
            return await self._evaluate(submission, form_id=str(form_id), submitter_key=submitter_key, context=context)
        finally:
            obs_logging.reset_context(tokens)

    async def _evaluate(
        self,
        submission: Submission,
        *,
        form_id: str,
        submitter_key: str,
        context: AmbientContext | None,
    ) -> Verdict:
        settings = self.settings
        threshold = self.threshold
        stage = EvaluationStage.INIT
        submission = submission.without(self.policy.excluded_fields)
        digest = content_hash(submission)

        if not settings.enabled:
            evidence = AggregateResult(normalized_score=0.0, preliminary_score=0.0, signals=MappingProxyType({}))
            return self._emit(
                Verdict(
                    is_spam=False,
                    action=VerdictAction.ALLOW,
                    score=0.0,
                    strikes=0,
                    evidence=evidence,
                    threshold=threshold,
                    content_hash=digest,
                    block_action=settings.block_action,
                ),
                stage,
            )

        stage = EvaluationStage.CHEAP_CHECKS
        signals: dict[str, DetectorReport] = {}
        if settings.pattern_check_enabled:
            signals["pattern"] = self._run_detector("pattern", lambda: self._patterns.analyze(submission))
        if settings.behavior_enabled:
            signals["behavior"] = self._run_detector("behavior", lambda: self._behavior.analyze(submission, context))

        duplicate = False
        if settings.duplicate_check_enabled and self._duplicates is not None:
            started = time.perf_counter()
            try:
                duplicate = await self._duplicates.check(
                    submission,
                    form_id,
                    submitter_key,
                    timedelta(hours=settings.duplicate_check_timeframe),
                    digest=digest,
                )
            except Exception:
                logger.exception("duplicate lookup failed", extra={"stage": stage.value})
                obs_metrics.DETECTOR_FAILURES.labels(detector="duplicate", check="lookup").inc()
            finally:
                obs_metrics.DETECTOR_LATENCY.labels(detector="duplicate").observe(time.perf_counter() - started)
            if duplicate:
                signals["duplicate"] = DetectorReport(
                    detector="duplicate",
                    results=(DetectorResult.hit("duplicate", 100, "Identical submission received recently"),),
                )

        preliminary = max((report.normalized for report in signals.values()), default=0.0)

        moderation: Optional[ModerationResult] = None
        moderation_score = 0.0
        if (
            settings.openai_enabled
            and self._moderation is not None
            and preliminary < threshold
            and not submission.is_blank
        ):
            stage = EvaluationStage.MODERATION
            started = time.perf_counter()
            try:
                moderation = await self._moderation.assess(
                    build_text(submission),
                    (context.language if context else None) or settings.expected_language,
                    submitter_key=submitter_key,
                )
            except Exception:
                logger.exception("moderation backend failed", extra={"stage": stage.value})
                moderation = ModerationResult.neutral("moderation backend failed")
            obs_metrics.DETECTOR_LATENCY.labels(detector="moderation").observe(time.perf_counter() - started)
            moderation_score = moderation.score
            if moderation.error:
                # an inconclusive moderation answer never decides on its own
                moderation_score = min(moderation_score, math.nextafter(threshold, 0.0))

        stage = EvaluationStage.AGGREGATE
        final_score = max(preliminary, moderation_score)
        is_spam = final_score >= threshold
        soft_only = self._soft_warning_only(signals, moderation, moderation_score)
        evidence = AggregateResult(
            normalized_score=final_score,
            preliminary_score=preliminary,
            signals=MappingProxyType(signals),
            moderation_invoked=moderation is not None,
            moderation=moderation,
            duplicate=duplicate,
            soft_warning_only=soft_only,
        )

        stage = EvaluationStage.STRIKE_EVAL
        if soft_only:
            # the atomic increment decides; only the first strike in the window is a warning
            strikes = await self._safe_record_strike(form_id, submitter_key, stage)
            if strikes <= 1:
                action = VerdictAction.SOFT_WARNING
            else:
                action = VerdictAction.BLOCK
                is_spam = True
        else:
            strikes = (await self._safe_strike_state(form_id, submitter_key, stage)).count
            action = VerdictAction.BLOCK if is_spam else VerdictAction.ALLOW

        stage = EvaluationStage.VERDICT
        verdict = Verdict(
            is_spam=is_spam,
            action=action,
            score=final_score,
            strikes=strikes,
            evidence=evidence,
            threshold=threshold,
            content_hash=digest,
            block_action=settings.block_action,
        )
        return self._emit(verdict, stage)

    async def clear_strikes(self, form_id: str, submitter_key: str) -> None:
        await self._strikes.clear(str(form_id), submitter_key)

    async def strike_state(self, form_id: str, submitter_key: str) -> StrikeState:
        return await self._strikes.current(str(form_id), submitter_key)

    # --- internals -----------------------------------------------------------

    def _run_detector(self, name: str, run: Callable[[], DetectorReport]) -> DetectorReport:
        started = time.perf_counter()
        try:
            return run()
        except Exception:
            logger.exception("detector failed", extra={"detector": name})
            obs_metrics.DETECTOR_FAILURES.labels(detector=name, check="*").inc()
            return DetectorReport(detector=name)
        finally:
            obs_metrics.DETECTOR_LATENCY.labels(detector=name).observe(time.perf_counter() - started)

    def _soft_warning_only(
        self,
        signals: Mapping[str, DetectorReport],
        moderation: Optional[ModerationResult],
        moderation_score: float,
    ) -> bool:
        if not any(report.has_soft_warning for report in signals.values()):
            return False
        floor = self.settings.hard_spam_floor
        threshold = self.threshold
        for report in signals.values():
            hard = report.hard_score()
            if hard >= floor or hard / 100.0 >= threshold:
                return False
        # a moderation-confirmed spam signal always escalates to a hard block
        if moderation is not None and (moderation.is_spam or moderation_score >= threshold):
            return False
        return True

    async def _safe_strike_state(self, form_id: str, submitter_key: str, stage: EvaluationStage) -> StrikeState:
        try:
            return await self._strikes.current(form_id, submitter_key)
        except Exception:
            logger.exception("strike lookup failed", extra={"stage": stage.value})
            return StrikeState(count=0)

    async def _safe_record_strike(self, form_id: str, submitter_key: str, stage: EvaluationStage) -> int:
        try:
            state = await self._strikes.record(form_id, submitter_key)
        except Exception:
            logger.exception("strike write failed", extra={"stage": stage.value})
            return 1
        return state.count

    def _emit(self, verdict: Verdict, stage: EvaluationStage) -> Verdict:
        obs_metrics.VERDICTS_TOTAL.labels(action=verdict.action.value).inc()
        extra: dict[str, Any] = {
            "action": verdict.action.value,
            "score": round(verdict.score, 4),
            "strikes": verdict.strikes,
            "moderation_invoked": verdict.evidence.moderation_invoked,
            "duplicate": verdict.evidence.duplicate,
            "stage": stage.value,
        }
        if verdict.action is VerdictAction.ALLOW:
            logger.info("spam verdict", extra=extra)
        else:
            logger.warning("spam verdict", extra={**extra, "reasons": verdict.reasons[:5]})
        return verdict
