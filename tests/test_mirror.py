from __future__ import annotations

import json

import pytest

from core import ContentRecord, RecordStatus
from storage import InMemoryMirrorStore, MirrorWriter, RedisMirrorStore
from utils.exceptions import MirrorError

from conftest import FailingMirrorStore, complete_content, make_key


class FakeRedis:
    def __init__(self) -> None:
        self.hashes = {}

    async def hset(self, name, mapping):
        self.hashes.setdefault(name, {}).update(mapping)

    async def hgetall(self, name):
        return dict(self.hashes.get(name, {}))

    async def aclose(self):
        return None


@pytest.mark.asyncio
async def test_status_update_merges_into_full_payload() -> None:
    key = make_key()
    writer = MirrorWriter(InMemoryMirrorStore())
    record = ContentRecord(**key.as_dict(), **complete_content(key), raw_json={"x": 1})

    assert await writer.mirror_payload(key.composite_id, record) is True
    assert await writer.mirror_status(key.composite_id, RecordStatus.REFRESHING, key) is True

    doc = await writer.fetch(key.composite_id)
    assert doc["status"] == "refreshing"
    assert doc["visa_description"] == "Tourist eVisa for JP"
    assert "raw_json" not in doc
    assert "id" not in doc


@pytest.mark.asyncio
async def test_full_payload_forces_ready_status() -> None:
    key = make_key()
    writer = MirrorWriter(InMemoryMirrorStore())
    record = ContentRecord(**key.as_dict(), **complete_content(key), status=RecordStatus.PROCESSING)
    await writer.mirror_payload(key.composite_id, record)
    assert (await writer.fetch(key.composite_id))["status"] == "ready"


@pytest.mark.asyncio
async def test_writer_swallows_store_failures() -> None:
    key = make_key()
    writer = MirrorWriter(FailingMirrorStore())
    assert await writer.mirror_status(key.composite_id, RecordStatus.QUEUED, key) is False
    assert await writer.mirror_payload(key.composite_id, ContentRecord(**key.as_dict())) is False


@pytest.mark.asyncio
async def test_redis_mirror_round_trips_json_fields() -> None:
    client = FakeRedis()
    mirror = RedisMirrorStore("redis://localhost:6379/0", namespace="test", client=client)
    await mirror.merge_upsert("doc-1", {"status": "queued", "embassy_link": None})
    await mirror.merge_upsert("doc-1", {"status": "ready"})

    assert client.hashes["test:doc-1"]["embassy_link"] == json.dumps(None)
    assert await mirror.fetch("doc-1") == {"status": "ready", "embassy_link": None}
    assert await mirror.fetch("missing") is None


@pytest.mark.asyncio
async def test_redis_mirror_requires_start() -> None:
    mirror = RedisMirrorStore("redis://localhost:6379/0")
    with pytest.raises(MirrorError):
        await mirror.merge_upsert("doc-1", {"status": "queued"})
