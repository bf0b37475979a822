from __future__ import annotations

import asyncio

import pytest

from core import ContentRecord, RecordStatus
from orchestrator import BulkRepopulator, dedupe_by_key
from utils.exceptions import KeyValidationError, StoreError

from conftest import FakeGenerator, Harness, RecordingStore, complete_content, make_key, utc_days_ago


DESTINATIONS = ["JP", "FR", "DE", "IT", "ES", "BR", "MX", "TH", "VN", "KE"]


async def _seed_stale(harness: Harness, destinations=DESTINATIONS) -> None:
    for destination in destinations:
        await harness.seed(make_key(destination=destination), days_old=45)


class DuplicatingStore(RecordingStore):
    async def find_stale(self, cutoff, limit):
        rows = await super().find_stale(cutoff, limit)
        return rows + rows


class BrokenScanStore(RecordingStore):
    async def find_stale(self, cutoff, limit):
        raise StoreError("relation does not exist", operation="find_stale")


def test_dedupe_keeps_one_row_per_key_in_first_seen_order() -> None:
    jp, fr = make_key(destination="JP"), make_key(destination="FR")
    rows = [
        ContentRecord(**jp.as_dict(), source="old"),
        ContentRecord(**fr.as_dict()),
        ContentRecord(**jp.as_dict(), source="new"),
    ]
    deduped = dedupe_by_key(rows)
    assert [r.destination for r in deduped] == ["JP", "FR"]
    assert deduped[0].source == "new"


@pytest.mark.asyncio
async def test_duplicates_run_one_job_per_key() -> None:
    harness = Harness(store=DuplicatingStore())
    await harness.seed(make_key(), days_old=45)

    summary = await harness.repopulator.run(days=30, provider="openai", limit=100, concurrency=3)

    assert summary.requested == 1
    assert summary.refreshed == 1
    assert len(harness.generator.calls) == 1


@pytest.mark.asyncio
async def test_concurrency_cap_is_respected() -> None:
    harness = Harness(generator=FakeGenerator(delay=0.02))
    await _seed_stale(harness)

    summary = await harness.repopulator.run(days=30, concurrency=3)

    assert summary.requested == 10
    assert summary.refreshed == 10
    assert harness.generator.max_in_flight == 3
    # Admission follows submission order.
    assert [key.destination for key, _ in harness.generator.calls] == DESTINATIONS


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_others() -> None:
    failing = make_key(destination=DESTINATIONS[3])
    harness = Harness(generator=FakeGenerator(fail_for={failing}))
    await _seed_stale(harness)

    summary = await harness.repopulator.run(days=30, provider="gemini", concurrency=3)

    assert summary.ok is True
    assert summary.provider == "gemini"
    assert (summary.requested, summary.refreshed, summary.failed) == (10, 9, 1)
    assert len(summary.errors) == 1
    assert summary.errors[0].key == failing.as_dict()
    assert summary.errors[0].error["name"] == "GenerationError"
    assert len(harness.generator.calls) == 10


@pytest.mark.asyncio
async def test_error_list_is_truncated_but_counts_are_not() -> None:
    keys = {make_key(destination=d) for d in DESTINATIONS}
    harness = Harness(generator=FakeGenerator(fail_for=keys))
    harness.repopulator = BulkRepopulator(store=harness.store, job=harness.job, error_preview=4)
    await _seed_stale(harness)

    summary = await harness.repopulator.run(days=30)

    assert summary.failed == 10
    assert summary.refreshed == 0
    assert len(summary.errors) == 4


@pytest.mark.asyncio
async def test_limit_bounds_the_scan(harness: Harness) -> None:
    await _seed_stale(harness)
    summary = await harness.repopulator.run(days=30, limit=4)
    assert summary.requested == 4


@pytest.mark.asyncio
async def test_nothing_stale_returns_message(harness: Harness) -> None:
    await harness.seed(make_key(), days_old=2)
    summary = await harness.repopulator.run(days=30)
    assert summary.requested == 0
    assert summary.message == "No rows older than 30 days."
    assert harness.generator.calls == []


@pytest.mark.asyncio
async def test_scan_failure_aborts_the_run() -> None:
    harness = Harness(store=BrokenScanStore())
    with pytest.raises(StoreError):
        await harness.repopulator.run(days=30)
    assert harness.generator.calls == []


@pytest.mark.asyncio
async def test_runs_are_visible_through_the_stores(harness: Harness) -> None:
    await _seed_stale(harness, ["JP", "FR"])
    await harness.repopulator.run(days=30)
    for destination in ("JP", "FR"):
        key = make_key(destination=destination)
        record = await harness.store.find_one(key)
        assert record.content() == complete_content(key)
        assert record.last_updated > utc_days_ago(1)
        assert (await harness.mirror.fetch(key.composite_id))["status"] == "ready"


@pytest.mark.asyncio
async def test_cancellation_propagates() -> None:
    harness = Harness(generator=FakeGenerator(delay=5))
    await _seed_stale(harness, ["JP"])
    task = asyncio.ensure_future(harness.repopulator.run(days=30))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_first_generation_failure_is_retried_by_repopulation() -> None:
    key = make_key()
    harness = Harness(generator=FakeGenerator(fail_for={key}))
    await harness.coordinator.lookup(key)
    await harness.runner.drain(timeout=5)
    assert (await harness.store.find_one(key)).last_updated is None

    harness.generator.fail_for.clear()
    summary = await harness.repopulator.run(days=30)

    assert (summary.requested, summary.refreshed) == (1, 1)
    record = await harness.store.find_one(key)
    assert record.status == RecordStatus.READY
    assert record.is_complete()


@pytest.mark.asyncio
async def test_unknown_provider_is_rejected_before_the_scan() -> None:
    harness = Harness(store=BrokenScanStore())
    with pytest.raises(KeyValidationError, match="provider"):
        await harness.repopulator.run(days=30, provider="mistral")


class BlankKeyStore(RecordingStore):
    async def find_stale(self, cutoff, limit):
        rows = await super().find_stale(cutoff, limit)
        broken = ContentRecord(**{**make_key(destination="ZZ").as_dict(), "destination": "  "})
        return [broken] + rows


@pytest.mark.asyncio
async def test_row_with_invalid_stored_key_is_reported_not_fatal() -> None:
    harness = Harness(store=BlankKeyStore())
    await _seed_stale(harness, ["JP", "FR"])

    summary = await harness.repopulator.run(days=30)

    assert (summary.requested, summary.refreshed, summary.failed) == (3, 2, 1)
    assert summary.errors[0].key["destination"] == "  "
    assert summary.errors[0].error["message"] == "Missing field: destination"
    assert len(harness.generator.calls) == 2
