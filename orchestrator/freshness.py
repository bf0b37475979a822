"""Freshness policy and target-status decision table. Pure functions, no I/O."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from core import ContentRecord, RecordStatus


DEFAULT_FRESHNESS_DAYS = 30


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps from the store are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_fresh(
    last_updated: Optional[datetime],
    threshold_days: float = DEFAULT_FRESHNESS_DAYS,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """``now - last_updated < threshold_days``. A missing timestamp is never fresh."""
    if last_updated is None:
        return False
    current = _as_utc(now or datetime.now(timezone.utc))
    return current - _as_utc(last_updated) < timedelta(days=threshold_days)


def is_usable(
    record: Optional[ContentRecord],
    *,
    force_refresh: bool = False,
    threshold_days: float = DEFAULT_FRESHNESS_DAYS,
    now: Optional[datetime] = None,
) -> bool:
    """Servable without regeneration: exists, fresh, complete, not forced."""
    if record is None or force_refresh:
        return False
    return is_fresh(record.last_updated, threshold_days, now=now) and record.is_complete()


def decide_status(
    record: Optional[ContentRecord],
    *,
    force_refresh: bool = False,
    threshold_days: float = DEFAULT_FRESHNESS_DAYS,
    now: Optional[datetime] = None,
) -> RecordStatus:
    """
    Target status for a lookup, first matching rule wins:

    1. fresh, complete, not forced            -> ready
    2. forced and the row is in error         -> processing
    3. row exists but is incomplete           -> processing
    4. row exists, complete, stale (or forced) -> refreshing
    5. no row                                 -> queued
    """
    if is_usable(record, force_refresh=force_refresh, threshold_days=threshold_days, now=now):
        return RecordStatus.READY
    if record is None:
        return RecordStatus.QUEUED
    if force_refresh and record.status == RecordStatus.ERROR:
        return RecordStatus.PROCESSING
    if not record.is_complete():
        # incomplete wins over stale
        return RecordStatus.PROCESSING
    return RecordStatus.REFRESHING
