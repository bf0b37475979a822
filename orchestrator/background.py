"""Detached task runner for fire-and-forget regeneration jobs."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Dict, Optional, Set

from utils.exceptions import serialize_error


logger = logging.getLogger("visa_cache.background")


class BackgroundTaskRunner:
    """
    Launch coroutines without awaiting them.

    The runner holds the only strong reference to each task until it
    finishes, so detached jobs are not garbage-collected mid-flight. Task
    outcomes are logged, never returned: callers observe results through the
    stores.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self._names: Dict[asyncio.Task, str] = {}
        self._launched = 0

    def launch(self, coro: Awaitable, *, name: Optional[str] = None) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and return immediately."""
        task = asyncio.ensure_future(coro)
        label = name or f"job-{self._launched + 1}"
        self._launched += 1
        self._tasks.add(task)
        self._names[task] = label
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        label = self._names.pop(task, "job")
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task {label} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Background task {label} failed: {serialize_error(exc)}")

    def size(self) -> int:
        return len(self._tasks)

    @property
    def launched(self) -> int:
        return self._launched

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight tasks. Returns False if some were still running at timeout."""
        pending = set(self._tasks)
        if not pending:
            return True
        done, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(f"{len(still_running)} background task(s) still running after {timeout}s")
        return not still_running
