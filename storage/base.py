"""
Record Store
Durable keyed storage for content records
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from core import KEY_FIELDS, ContentRecord, RequestKey


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def staleness_cutoff(days: float, now: Optional[datetime] = None) -> datetime:
    """Timestamp before which ``last_updated`` counts as stale."""
    return (now or utcnow()) - timedelta(days=days)


class RecordStore(ABC):
    """
    Record store contract

    Rows are uniquely identified by the five request key fields. Every
    write is an idempotent upsert on that key: only the columns present in
    the row are written, so a status-only write never touches content or
    ``last_updated``.

    Implementations raise ``StoreError`` on any backend failure.
    """

    async def start(self) -> None:
        """Open connections / create schema. Default no-op."""
        return None

    async def close(self) -> None:
        """Release connections. Default no-op."""
        return None

    @abstractmethod
    async def upsert(self, row: Dict[str, Any]) -> ContentRecord:
        """
        Insert or merge ``row`` keyed on the request key.

        Args:
            row: must contain every key field; other columns are optional

        Returns:
            The stored record after the merge
        """
        pass

    @abstractmethod
    async def find_one(self, key: RequestKey) -> Optional[ContentRecord]:
        """Exact, case-sensitive lookup. At most one match."""
        pass

    @abstractmethod
    async def update_fields(self, key: RequestKey, fields: Dict[str, Any]) -> None:
        """Update columns of an existing row. Missing rows are left alone."""
        pass

    @abstractmethod
    async def find_stale(self, cutoff: datetime, limit: int) -> List[ContentRecord]:
        """Rows matching ``is_stale_row``, at most ``limit``, store order."""
        pass

    @abstractmethod
    async def purge_older_than(self, days: float) -> int:
        """Delete rows matching ``is_expired_row`` for the ``days`` cutoff. Returns the count."""
        pass


def row_key(row: Dict[str, Any]) -> RequestKey:
    """Extract the request key from a row dict."""
    return RequestKey(**{name: row[name] for name in KEY_FIELDS})


def _before(value: Optional[datetime], cutoff: datetime) -> bool:
    if value is None:
        return False
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value < cutoff


def is_stale_row(row: Dict[str, Any], cutoff: datetime) -> bool:
    """
    Candidate for repopulation.

    Generated rows are stale once ``last_updated < cutoff``. Rows that were
    never generated (``last_updated`` is null) qualify when their first
    generation failed, or when the placeholder has sat untouched since
    before the cutoff.
    """
    if row.get("last_updated") is not None:
        return _before(row["last_updated"], cutoff)
    return row.get("status") == "error" or _before(row.get("updated_at"), cutoff)


def is_expired_row(row: Dict[str, Any], cutoff: datetime) -> bool:
    """
    Candidate for purge.

    Same age rule as ``is_stale_row``, but a never-generated row is only
    purged once untouched since before the cutoff, so a recent failure
    survives for the next repopulation to retry.
    """
    if row.get("last_updated") is not None:
        return _before(row["last_updated"], cutoff)
    return _before(row.get("updated_at"), cutoff)
