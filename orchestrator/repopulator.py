"""Bulk repopulation of stale records under a concurrency cap."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Tuple, Union

from core import (
    KEY_FIELDS,
    ContentRecord,
    Provider,
    RepopulateFailure,
    RepopulateSummary,
    RequestKey,
)
from storage import RecordStore, staleness_cutoff
from utils.exceptions import KeyValidationError, serialize_error

from .job import RegenerationJob
from .service import parse_provider


logger = logging.getLogger("visa_cache.repopulate")

DEFAULT_ERROR_PREVIEW = 10


def dedupe_by_key(rows: List[ContentRecord]) -> List[ContentRecord]:
    """One row per request key; the last row seen wins, first-seen order is kept."""
    by_key: Dict[RequestKey, ContentRecord] = {}
    for row in rows:
        by_key[row.key] = row
    return list(by_key.values())


def split_unkeyable(rows: List[ContentRecord]) -> Tuple[List[ContentRecord], List[RepopulateFailure]]:
    """Separate rows whose stored key no longer validates; they are reported, never regenerated."""
    usable: List[ContentRecord] = []
    rejected: List[RepopulateFailure] = []
    for row in rows:
        raw_key = {name: getattr(row, name) for name in KEY_FIELDS}
        try:
            RequestKey.parse(raw_key)
        except KeyValidationError as exc:
            rejected.append(RepopulateFailure(key=raw_key, error=serialize_error(exc)))
        else:
            usable.append(row)
    return usable, rejected


class BulkRepopulator:
    """
    Regenerate every stale record

    Jobs are admitted through a semaphore of size ``concurrency`` in
    submission order. All jobs are attempted; one failure never cancels the
    others. Only a failure of the initial stale scan aborts the run.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        job: RegenerationJob,
        error_preview: int = DEFAULT_ERROR_PREVIEW,
    ):
        self.store = store
        self.job = job
        self.error_preview = max(0, int(error_preview))

    async def run(
        self,
        *,
        days: int = 30,
        provider: Union[Provider, str] = Provider.OPENAI,
        limit: int = 100,
        concurrency: int = 3,
    ) -> RepopulateSummary:
        provider_name = parse_provider(provider).value
        cutoff = staleness_cutoff(days)

        # StoreError here aborts the run.
        stale = await self.store.find_stale(cutoff, limit)
        if not stale:
            return RepopulateSummary(
                days=days,
                provider=provider_name,
                message=f"No rows older than {days} days.",
            )

        usable, rejected = split_unkeyable(stale)
        keys = [row.key for row in dedupe_by_key(usable)]
        semaphore = asyncio.Semaphore(max(1, int(concurrency)))

        async def _run_one(key: RequestKey) -> ContentRecord:
            async with semaphore:
                return await self.job.run(key, provider_name)

        results = await asyncio.gather(*[_run_one(key) for key in keys], return_exceptions=True)

        failures: List[RepopulateFailure] = list(rejected)
        refreshed = 0
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failures.append(RepopulateFailure(key=key.as_dict(), error=serialize_error(result)))
            else:
                refreshed += 1

        requested = len(keys) + len(rejected)
        if failures:
            logger.error(f"Repopulate errors: {[f.model_dump() for f in failures]}")
        logger.info(
            f"Repopulate done: requested={requested} refreshed={refreshed} "
            f"failed={len(failures)} provider={provider_name} days={days}"
        )

        return RepopulateSummary(
            days=days,
            provider=provider_name,
            requested=requested,
            refreshed=refreshed,
            failed=len(failures),
            errors=failures[: self.error_preview],
        )
