"""Cache freshness and regeneration coordination."""

from .background import BackgroundTaskRunner
from .freshness import DEFAULT_FRESHNESS_DAYS, decide_status, is_fresh, is_usable
from .job import RegenerationJob
from .repopulator import BulkRepopulator, dedupe_by_key
from .scheduler import RepopulateScheduler
from .service import CacheCoordinator, parse_provider

__all__ = [
    "BackgroundTaskRunner",
    "DEFAULT_FRESHNESS_DAYS",
    "decide_status",
    "is_fresh",
    "is_usable",
    "RegenerationJob",
    "BulkRepopulator",
    "dedupe_by_key",
    "RepopulateScheduler",
    "CacheCoordinator",
    "parse_provider",
]
