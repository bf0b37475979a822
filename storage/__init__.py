"""
Storage Module
Record store (authoritative) and mirror store (low-latency status reads)
"""
from .base import RecordStore, is_expired_row, is_stale_row, staleness_cutoff, utcnow
from .memory_store import InMemoryRecordStore
from .sql_store import SqlRecordStore, build_table
from .mirror import (
    InMemoryMirrorStore,
    MirrorStore,
    MirrorWriter,
    RedisMirrorStore,
)

__all__ = [
    "RecordStore",
    "is_expired_row",
    "is_stale_row",
    "staleness_cutoff",
    "utcnow",
    "InMemoryRecordStore",
    "SqlRecordStore",
    "build_table",
    "InMemoryMirrorStore",
    "MirrorStore",
    "MirrorWriter",
    "RedisMirrorStore",
]
