"""
Mirror Store
Secondary low-latency read store that clients poll for status.

Writes are merged, never replaced, so partial status updates compose with
earlier full payloads. The mirror is a convenience path: ``MirrorWriter`` is
the one place that talks to it and it never lets a failure escape.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core import ContentRecord, RecordStatus, RequestKey
from utils.exceptions import MirrorError


logger = logging.getLogger("visa_cache.mirror")


class MirrorStore(ABC):
    """Keyed document store with merge semantics."""

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def merge_upsert(self, doc_id: str, payload: Dict[str, Any]) -> None:
        """Merge ``payload`` into the document, creating it if needed."""
        pass

    @abstractmethod
    async def fetch(self, doc_id: str) -> Optional[Dict[str, Any]]:
        """Current document or None."""
        pass


class InMemoryMirrorStore(MirrorStore):
    """Dict-of-dicts mirror for tests and local development."""

    def __init__(self) -> None:
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def merge_upsert(self, doc_id: str, payload: Dict[str, Any]) -> None:
        async with self._lock:
            self._docs.setdefault(doc_id, {}).update(payload)

    async def fetch(self, doc_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            doc = self._docs.get(doc_id)
            return dict(doc) if doc is not None else None


class RedisMirrorStore(MirrorStore):
    """
    Redis-backed mirror

    One hash per document under ``<namespace>:<doc_id>``; each field value is
    JSON-encoded so nulls and non-string values round-trip. ``HSET`` only
    touches the given fields, which is exactly merge semantics.
    """

    def __init__(self, redis_url: str, namespace: str = "visa_cache", client: Any = None):
        self.redis_url = redis_url
        self.namespace = namespace
        self._redis = client

    def _doc_key(self, doc_id: str) -> str:
        return f"{self.namespace}:{doc_id}"

    async def start(self) -> None:
        if self._redis is not None:
            return
        import redis.asyncio as redis

        self._redis = redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )
        try:
            await self._redis.ping()
        except Exception as exc:
            # writes log their own failures
            logger.error(f"Mirror store unreachable at startup: {exc}")
        else:
            logger.info("Mirror store connected")

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def merge_upsert(self, doc_id: str, payload: Dict[str, Any]) -> None:
        if self._redis is None:
            raise MirrorError("mirror store not started", {"doc_id": doc_id})
        mapping = {field: json.dumps(value, default=str) for field, value in payload.items()}
        if mapping:
            await self._redis.hset(self._doc_key(doc_id), mapping=mapping)

    async def fetch(self, doc_id: str) -> Optional[Dict[str, Any]]:
        if self._redis is None:
            raise MirrorError("mirror store not started", {"doc_id": doc_id})
        raw = await self._redis.hgetall(self._doc_key(doc_id))
        if not raw:
            return None
        return {field: json.loads(value) for field, value in raw.items()}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MirrorWriter:
    """
    Best-effort writer in front of a ``MirrorStore``

    Every method returns a bool and never raises: failures are logged with
    their duration and swallowed.
    """

    def __init__(self, store: MirrorStore):
        self.store = store

    async def _write(self, doc_id: str, payload: Dict[str, Any], label: str) -> bool:
        started = time.perf_counter()
        try:
            await self.store.merge_upsert(doc_id, payload)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(f"Mirror {label} FAILED: {elapsed_ms:.0f}ms doc={doc_id} error={exc!r}")
            return False
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"Mirror {label}: {elapsed_ms:.0f}ms doc={doc_id}")
        return True

    async def mirror_status(self, doc_id: str, status: RecordStatus, key: RequestKey) -> bool:
        """Key fields plus status only; content already in the document is kept."""
        payload = {**key.as_dict(), "status": RecordStatus(status).value, "updated_at": _now_iso()}
        return await self._write(doc_id, payload, f"status update ({RecordStatus(status).value})")

    async def mirror_payload(self, doc_id: str, record: ContentRecord) -> bool:
        """Full record, status forced to ready."""
        payload = record.model_dump(mode="json", exclude={"id", "raw_json"})
        payload["status"] = RecordStatus.READY.value
        payload["updated_at"] = _now_iso()
        return await self._write(doc_id, payload, "full payload")

    async def fetch(self, doc_id: str) -> Optional[Dict[str, Any]]:
        """Read-through for status polling. Failures read as 'no document'."""
        try:
            return await self.store.fetch(doc_id)
        except Exception as exc:
            logger.error(f"Mirror fetch FAILED doc={doc_id} error={exc!r}")
            return None
