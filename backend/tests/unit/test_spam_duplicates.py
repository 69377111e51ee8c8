from datetime import datetime, timedelta, timezone

import pytest

from formguard.spam.domain.duplicates import DuplicateDetector, content_hash
from formguard.spam.domain.log_store import InMemoryLogStore, hash_submitter
from formguard.spam.domain.models import Submission


def _message(text: str) -> Submission:
    return Submission.from_values({"message": text}, {"message": "textarea"})


def test_content_hash_ignores_field_names_case_and_spacing() -> None:
    first = Submission.from_values({"message": "Hello  World"}, {"message": "textarea"})
    second = Submission.from_values({"comment": "hello world"}, {"comment": "textarea"})
    other = Submission.from_values({"comment": "hello world"}, {"comment": "text"})

    assert content_hash(first) == content_hash(second)
    assert content_hash(first) != content_hash(other)
    assert len(content_hash(first)) == 64


@pytest.mark.asyncio
async def test_duplicate_found_within_window() -> None:
    store = InMemoryLogStore()
    detector = DuplicateDetector(store)
    submission = _message("Please send me a quote")

    assert not await detector.check(submission, "contact", "203.0.113.7")

    await store.insert("contact", content_hash(submission), 0.9, "pattern", {}, "rejected", submitter_key="203.0.113.7")

    assert await detector.check(submission, "contact", "203.0.113.7")
    assert not await detector.check(submission, "newsletter", "203.0.113.7")
    assert not await detector.check(submission, "contact", "198.51.100.2")


@pytest.mark.asyncio
async def test_duplicate_outside_window_is_ignored() -> None:
    store = InMemoryLogStore()
    submission = _message("Please send me a quote")
    await store.insert("contact", content_hash(submission), 0.9, "pattern", {}, "rejected", submitter_key="203.0.113.7")
    later = datetime.now(timezone.utc) + timedelta(hours=25)
    detector = DuplicateDetector(store, clock=lambda: later)

    assert not await detector.check(submission, "contact", "203.0.113.7")
    assert await detector.check(submission, "contact", "203.0.113.7", lookback_window=timedelta(hours=48))


@pytest.mark.asyncio
async def test_blank_submission_is_never_duplicate() -> None:
    store = InMemoryLogStore()
    blank = Submission.from_values({})
    await store.insert("contact", content_hash(blank), 0.0, "none", {}, "allowed", submitter_key="203.0.113.7")

    assert not await DuplicateDetector(store).check(blank, "contact", "203.0.113.7")


@pytest.mark.asyncio
async def test_log_store_hashes_submitter() -> None:
    store = InMemoryLogStore()

    first = await store.insert("contact", "abc", 0.8, "pattern", {"k": 1}, "rejected", submitter_key="203.0.113.7")
    second = await store.insert("contact", "def", 0.8, "pattern", {}, "rejected", submitter_key="203.0.113.7")

    assert (first, second) == (1, 2)
    assert store.entries[0].submitter_hash == hash_submitter("203.0.113.7")
    assert "203.0.113.7" not in store.entries[0].submitter_hash
    since = datetime.now(timezone.utc) - timedelta(minutes=1)
    assert list(await store.find_recent("contact", "203.0.113.7", since)) == ["def", "abc"]


@pytest.mark.asyncio
async def test_log_store_prunes_entries_past_retention() -> None:
    now = [datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)]
    store = InMemoryLogStore(retention=timedelta(hours=24), clock=lambda: now[0])
    old = _message("Please send me a quote")
    await store.insert("contact", content_hash(old), 0.9, "pattern", {}, "rejected", submitter_key="203.0.113.7")

    now[0] += timedelta(hours=25)
    fresh = _message("Different request entirely")
    entry_id = await store.insert("contact", content_hash(fresh), 0.9, "pattern", {}, "rejected", submitter_key="203.0.113.7")

    assert entry_id == 2
    assert [entry.content_hash for entry in store.entries] == [content_hash(fresh)]
    detector = DuplicateDetector(store, clock=lambda: now[0])
    assert await detector.check(fresh, "contact", "203.0.113.7")
    assert not await detector.check(old, "contact", "203.0.113.7", lookback_window=timedelta(hours=48))


@pytest.mark.asyncio
async def test_log_store_caps_entry_count() -> None:
    store = InMemoryLogStore(max_entries=2)
    for digest in ("a", "b", "c"):
        await store.insert("contact", digest, 0.9, "pattern", {}, "rejected", submitter_key="203.0.113.7")

    since = datetime.now(timezone.utc) - timedelta(minutes=1)
    assert await store.find_recent("contact", "203.0.113.7", since) == ["c", "b"]
    assert [entry.id for entry in store.entries] == [2, 3]
