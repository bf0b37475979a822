"""In-memory record store for tests and local development."""

from __future__ import annotations

import asyncio
from datetime import datetime
from itertools import count
from typing import Any, Dict, List, Optional

from core import ContentRecord, RequestKey
from utils.exceptions import StoreError

from .base import RecordStore, is_expired_row, is_stale_row, row_key, staleness_cutoff


class InMemoryRecordStore(RecordStore):
    """Dict-backed store; the request key is the unique index."""

    def __init__(self) -> None:
        self._rows: Dict[RequestKey, Dict[str, Any]] = {}
        self._ids = count(1)
        self._lock = asyncio.Lock()

    async def upsert(self, row: Dict[str, Any]) -> ContentRecord:
        try:
            key = row_key(row)
        except (KeyError, ValueError) as exc:
            raise StoreError(f"row is missing key fields: {exc}", operation="upsert") from exc

        async with self._lock:
            current = self._rows.get(key)
            if current is None:
                current = {"id": next(self._ids)}
                self._rows[key] = current
            current.update(row)
            return ContentRecord(**current)

    async def find_one(self, key: RequestKey) -> Optional[ContentRecord]:
        async with self._lock:
            current = self._rows.get(key)
            return ContentRecord(**current) if current else None

    async def update_fields(self, key: RequestKey, fields: Dict[str, Any]) -> None:
        async with self._lock:
            current = self._rows.get(key)
            if current is not None:
                current.update(fields)

    async def find_stale(self, cutoff: datetime, limit: int) -> List[ContentRecord]:
        async with self._lock:
            stale = [
                ContentRecord(**row)
                for row in self._rows.values()
                if is_stale_row(row, cutoff)
            ]
        return stale[: max(0, int(limit))]

    async def purge_older_than(self, days: float) -> int:
        cutoff = staleness_cutoff(days)
        async with self._lock:
            doomed = [
                key
                for key, row in self._rows.items()
                if is_expired_row(row, cutoff)
            ]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    def size(self) -> int:
        return len(self._rows)
