"""Request coordinator: cache lookup, placeholder write, detached regeneration."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core import ContentRecord, LookupResult, Provider, RecordStatus, RequestKey
from storage import MirrorWriter, RecordStore
from utils.exceptions import KeyValidationError, StoreError

from .background import BackgroundTaskRunner
from .freshness import DEFAULT_FRESHNESS_DAYS, decide_status
from .job import RegenerationJob


logger = logging.getLogger("visa_cache.coordinator")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_provider(value: Any) -> Provider:
    if value is None or value == "":
        return Provider.OPENAI
    if isinstance(value, Provider):
        return value
    try:
        return Provider(str(value).lower())
    except ValueError as exc:
        raise KeyValidationError(f"Invalid field: provider ({value})", field="provider") from exc


class CacheCoordinator:
    """
    Entry point for single lookups

    Lookup, status decision, placeholder upsert and mirror write run inline; the
    regeneration job is launched on the background runner and never awaited.
    Two near-simultaneous lookups may both launch a job for the same key;
    the job's final upsert is idempotent so last writer wins.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        mirror: MirrorWriter,
        job: RegenerationJob,
        runner: Optional[BackgroundTaskRunner] = None,
        freshness_days: float = DEFAULT_FRESHNESS_DAYS,
        placeholder_attempts: int = 3,
        placeholder_backoff: float = 0.2,
    ):
        self.store = store
        self.mirror = mirror
        self.job = job
        self.runner = runner or BackgroundTaskRunner()
        self.freshness_days = freshness_days
        self.placeholder_attempts = max(1, int(placeholder_attempts))
        self.placeholder_backoff = max(0.0, float(placeholder_backoff))

    async def lookup(
        self,
        request: Union[RequestKey, Mapping[str, Any]],
        *,
        provider: Union[Provider, str, None] = Provider.OPENAI,
        force_refresh: bool = False,
    ) -> LookupResult:
        """
        Resolve one key.

        Raises:
            KeyValidationError: bad key or provider, nothing touched
            StoreError: lookup or placeholder write failed after retries
        """
        key = request if isinstance(request, RequestKey) else RequestKey.parse(request)
        provider_enum = parse_provider(provider)

        existing = await self.store.find_one(key)
        status = decide_status(existing, force_refresh=bool(force_refresh), threshold_days=self.freshness_days)

        stored = await self._write_placeholder(key, status)
        await self.mirror.mirror_status(key.composite_id, status, key)

        if status == RecordStatus.READY:
            return LookupResult(status=status, key=key, record=stored or existing)

        self.runner.launch(
            self.job.run(key, provider_enum, doc_id=key.composite_id),
            name=f"regenerate:{key.composite_id}",
        )
        logger.info(f"Lookup {key}: {status.value}, regeneration launched via {provider_enum.value}")
        return LookupResult(status=status, key=key, job_launched=True)

    async def _write_placeholder(self, key: RequestKey, status: RecordStatus) -> ContentRecord:
        row = {**key.as_dict(), "status": status.value, "updated_at": _utcnow()}
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.placeholder_attempts),
            wait=wait_exponential(multiplier=self.placeholder_backoff, max=2),
            retry=retry_if_exception_type(StoreError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self.store.upsert(row)

    async def purge_older_than(self, days: float) -> int:
        """Maintenance: delete rows not regenerated in ``days``."""
        purged = await self.store.purge_older_than(days)
        logger.info(f"Purged {purged} row(s) older than {days} days")
        return purged
