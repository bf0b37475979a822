"""Recurring repopulation on a fixed cadence."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from core import RepopulateSummary

from .repopulator import BulkRepopulator
from .service import parse_provider


logger = logging.getLogger("visa_cache.scheduler")


class RepopulateScheduler:
    """
    Run the bulk repopulator every ``interval_seconds``.

    One run at a time. A failing run is logged and the loop keeps going.
    """

    def __init__(
        self,
        repopulator: BulkRepopulator,
        *,
        interval_seconds: float,
        days: int = 30,
        provider: str = "openai",
        limit: int = 100,
        concurrency: int = 3,
        run_on_start: bool = False,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.repopulator = repopulator
        self.interval_seconds = float(interval_seconds)
        self.days = days
        self.provider = parse_provider(provider).value
        self.limit = limit
        self.concurrency = concurrency
        self.run_on_start = run_on_start
        self.last_run_at: Optional[datetime] = None
        self.last_summary: Optional[RepopulateSummary] = None
        self.runs = 0
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.ensure_future(self._loop())
        logger.info(
            f"Repopulate scheduler started: every {self.interval_seconds:.0f}s, "
            f"days={self.days} limit={self.limit} concurrency={self.concurrency}"
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Repopulate scheduler stopped")

    async def run_once(self) -> Optional[RepopulateSummary]:
        """Single tick. Returns None when the run failed."""
        async with self._lock:
            self.last_run_at = datetime.now(timezone.utc)
            self.runs += 1
            try:
                summary = await self.repopulator.run(
                    days=self.days,
                    provider=self.provider,
                    limit=self.limit,
                    concurrency=self.concurrency,
                )
            except Exception:
                logger.exception("Scheduled repopulation failed")
                return None
            self.last_summary = summary
            return summary

    async def _loop(self) -> None:
        if self.run_on_start:
            await self.run_once()
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()
