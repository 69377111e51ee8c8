from types import MappingProxyType

import pytest

from formguard.spam.domain.log_store import InMemoryLogStore, hash_submitter
from formguard.spam.domain.models import (
    AggregateResult,
    AmbientContext,
    DetectorReport,
    DetectorResult,
    Verdict,
    VerdictAction,
)
from formguard.spam.domain.recorder import (
    ACTION_ALLOWED,
    ACTION_CORRECTED,
    ACTION_MARKED,
    ACTION_REJECTED,
    ACTION_SOFT_WARNING,
    VerdictRecorder,
    action_taken,
)
from formguard.spam.domain.strikes import InMemoryStrikeStore, StrikeLedger

SUBMITTER = "203.0.113.7"


def _verdict(action: VerdictAction, score: float, *, soft: bool = False, strikes: int = 0, block_action: str = "reject") -> Verdict:
    results = ()
    if score:
        results = (DetectorResult.hit("links" if soft else "min_words", score * 100, "reason", soft_warning=soft),)
    signals = {"pattern": DetectorReport(detector="pattern", results=results)}
    evidence = AggregateResult(
        normalized_score=score,
        preliminary_score=score,
        signals=MappingProxyType(signals),
        soft_warning_only=soft,
    )
    return Verdict(
        is_spam=action is VerdictAction.BLOCK,
        action=action,
        score=score,
        strikes=strikes,
        evidence=evidence,
        content_hash="abc123",
        block_action=block_action,
    )


class FailingLogStore(InMemoryLogStore):
    async def insert(self, *args, **kwargs) -> int:
        raise ConnectionError("database unavailable")


def test_action_taken_mapping() -> None:
    assert action_taken(_verdict(VerdictAction.BLOCK, 0.8)) == ACTION_REJECTED
    assert action_taken(_verdict(VerdictAction.BLOCK, 0.8, block_action="mark")) == ACTION_MARKED
    assert action_taken(_verdict(VerdictAction.SOFT_WARNING, 0.2, soft=True)) == ACTION_SOFT_WARNING
    assert action_taken(_verdict(VerdictAction.ALLOW, 0.0)) == ACTION_ALLOWED


@pytest.mark.asyncio
async def test_block_is_logged_with_detection_method() -> None:
    store = InMemoryLogStore()
    recorder = VerdictRecorder(store, ledger=StrikeLedger(InMemoryStrikeStore()))
    context = AmbientContext(user_agent="Mozilla/5.0", locale="de_AT")

    log_id = await recorder.record(_verdict(VerdictAction.BLOCK, 0.8), form_id="contact", submitter_key=SUBMITTER, context=context)

    assert log_id == 1
    entry = store.entries[0]
    assert entry.action_taken == ACTION_REJECTED
    assert entry.detection_method == "pattern"
    assert entry.content_hash == "abc123"
    assert entry.submitter_hash == hash_submitter(SUBMITTER)
    assert entry.user_agent == "Mozilla/5.0"
    assert entry.site_locale == "de_AT"
    assert entry.detection_details["reasons"] == ["reason"]


@pytest.mark.asyncio
async def test_soft_warning_is_logged() -> None:
    store = InMemoryLogStore()
    recorder = VerdictRecorder(store, ledger=StrikeLedger(InMemoryStrikeStore()))

    await recorder.record(_verdict(VerdictAction.SOFT_WARNING, 0.2, soft=True, strikes=1), form_id="contact", submitter_key=SUBMITTER)

    assert store.entries[0].action_taken == ACTION_SOFT_WARNING
    assert store.entries[0].detection_method == "pattern"


@pytest.mark.asyncio
async def test_allowed_is_skipped_unless_logging_everything() -> None:
    store = InMemoryLogStore()
    ledger = StrikeLedger(InMemoryStrikeStore())

    skipped = await VerdictRecorder(store, ledger=ledger).record(_verdict(VerdictAction.ALLOW, 0.0), form_id="contact", submitter_key=SUBMITTER)
    logged = await VerdictRecorder(store, ledger=ledger, log_all_submissions=True).record(
        _verdict(VerdictAction.ALLOW, 0.0), form_id="contact", submitter_key=SUBMITTER
    )

    assert skipped is None
    assert logged == 1
    assert store.entries[0].detection_method == "none"


@pytest.mark.asyncio
async def test_correction_clears_strike_and_logs_event() -> None:
    store = InMemoryLogStore()
    ledger = StrikeLedger(InMemoryStrikeStore())
    await ledger.record("contact", SUBMITTER)
    recorder = VerdictRecorder(store, ledger=ledger)

    await recorder.record_correction(_verdict(VerdictAction.ALLOW, 0.0, strikes=1), form_id="contact", submitter_key=SUBMITTER)

    assert (await ledger.current("contact", SUBMITTER)).count == 0
    assert store.entries[0].action_taken == ACTION_CORRECTED
    assert store.entries[0].detection_details["previous_strikes"] == 1


@pytest.mark.asyncio
async def test_log_failure_is_swallowed() -> None:
    recorder = VerdictRecorder(FailingLogStore(), ledger=StrikeLedger(InMemoryStrikeStore()))

    result = await recorder.record(_verdict(VerdictAction.BLOCK, 0.8), form_id="contact", submitter_key=SUBMITTER)

    assert result is None
