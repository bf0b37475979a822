"""Shared fakes for the cache coordinator tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from core import ContentPayload, GeneratedContent, RequestKey
from generation import BaseContentGenerator
from orchestrator import BackgroundTaskRunner, BulkRepopulator, CacheCoordinator, RegenerationJob
from storage import InMemoryMirrorStore, InMemoryRecordStore, MirrorWriter
from utils.exceptions import GenerationError


def make_key(destination: str = "JP", **overrides: str) -> RequestKey:
    fields = {
        "resident_country": "US",
        "nationality": "US",
        "destination": destination,
        "visa_category": "Tourism",
        "visa_type": "eVisa",
    }
    fields.update(overrides)
    return RequestKey(**fields)


def complete_content(key: RequestKey) -> Dict[str, Optional[str]]:
    return {
        "eligibility_and_documents": "• Valid passport",
        "embassy_contact": f"Embassy of {key.destination}",
        "embassy_link": None,
        "processing_times": "3-5 working days",
        "visa_description": f"Tourist eVisa for {key.destination}",
        "visa_details": "Single entry, 90 days.",
        "how_to_apply_sticker": None,
        "medical_requirements": "Routine vaccinations.",
        "how_to_apply_evisa": "1. Apply online",
        "how_to_apply_voa": None,
        "how_to_apply_eta": None,
        "link_eta": None,
        "link_evisa": None,
        "visa_extension_info": "Extensions are not available.",
        "link_visa_form": None,
        "link_start_application": None,
    }


def utc_days_ago(days: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


class FakeGenerator(BaseContentGenerator):
    """Deterministic generator that records calls and peak concurrency."""

    def __init__(
        self,
        *,
        delay: float = 0.0,
        fail_for: Optional[Set[RequestKey]] = None,
        incomplete_for: Optional[Set[RequestKey]] = None,
    ):
        self.delay = delay
        self.fail_for = set(fail_for or ())
        self.incomplete_for = set(incomplete_for or ())
        self.calls: List[Tuple[RequestKey, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, key, provider="openai") -> GeneratedContent:
        self.calls.append((key, str(provider)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if key in self.fail_for:
                raise GenerationError("provider exploded", provider=str(provider), key=key.as_dict())
            content = complete_content(key)
            if key in self.incomplete_for:
                content = {"visa_description": content["visa_description"]}
            return GeneratedContent(
                provider=str(provider),
                payload=ContentPayload(**content),
                raw_json=content,
            )
        finally:
            self.in_flight -= 1


class RecordingStore(InMemoryRecordStore):
    """In-memory store that keeps the status of every write per key."""

    def __init__(self) -> None:
        super().__init__()
        self.status_history: Dict[RequestKey, List[str]] = {}

    def _track(self, key: RequestKey, fields: Dict[str, Any]) -> None:
        if "status" in fields:
            self.status_history.setdefault(key, []).append(fields["status"])

    async def upsert(self, row):
        record = await super().upsert(row)
        self._track(record.key, row)
        return record

    async def update_fields(self, key, fields):
        await super().update_fields(key, fields)
        self._track(key, fields)


class FailingMirrorStore(InMemoryMirrorStore):
    async def merge_upsert(self, doc_id, payload):
        raise ConnectionError("mirror down")


class Harness:
    """Coordinator + job + repopulator over in-memory stores."""

    def __init__(self, generator: Optional[FakeGenerator] = None, store=None, mirror_store=None):
        self.store = store or RecordingStore()
        self.mirror_store = mirror_store or InMemoryMirrorStore()
        self.mirror = MirrorWriter(self.mirror_store)
        self.generator = generator or FakeGenerator()
        self.runner = BackgroundTaskRunner()
        self.job = RegenerationJob(store=self.store, mirror=self.mirror, generator=self.generator)
        self.coordinator = CacheCoordinator(
            store=self.store,
            mirror=self.mirror,
            job=self.job,
            runner=self.runner,
            placeholder_backoff=0,
        )
        self.repopulator = BulkRepopulator(store=self.store, job=self.job)

    async def seed(self, key: RequestKey, *, days_old: float, complete: bool = True, status: str = "ready"):
        row = {**key.as_dict(), "status": status, "last_updated": utc_days_ago(days_old), "updated_at": utc_days_ago(days_old)}
        if complete:
            row.update(complete_content(key))
        return await self.store.upsert(row)


@pytest.fixture
def harness() -> Harness:
    return Harness()
