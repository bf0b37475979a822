"""Service wiring: one explicitly constructed runtime per process."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from config import Settings, get_settings
from generation import BaseContentGenerator, ContentGenerator
from orchestrator import (
    BackgroundTaskRunner,
    BulkRepopulator,
    CacheCoordinator,
    RegenerationJob,
    RepopulateScheduler,
)
from storage import (
    InMemoryMirrorStore,
    InMemoryRecordStore,
    MirrorStore,
    MirrorWriter,
    RecordStore,
    RedisMirrorStore,
    SqlRecordStore,
)


logger = logging.getLogger("visa_cache.runtime")


@dataclass
class ServiceRuntime:
    """All collaborators, built once and injected everywhere."""

    settings: Settings
    store: RecordStore
    mirror_store: MirrorStore
    mirror: MirrorWriter
    generator: BaseContentGenerator
    runner: BackgroundTaskRunner
    job: RegenerationJob
    coordinator: CacheCoordinator
    repopulator: BulkRepopulator
    scheduler: Optional[RepopulateScheduler] = None

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        *,
        store: Optional[RecordStore] = None,
        mirror_store: Optional[MirrorStore] = None,
        generator: Optional[BaseContentGenerator] = None,
        runner: Optional[BackgroundTaskRunner] = None,
    ) -> "ServiceRuntime":
        settings = settings or get_settings()

        if store is None:
            if settings.storage.database_url:
                store = SqlRecordStore(settings.storage.database_url, table_name=settings.storage.table_name)
            else:
                logger.warning("STORAGE_DATABASE_URL not set; using in-memory record store")
                store = InMemoryRecordStore()

        if mirror_store is None:
            if settings.storage.redis_url:
                mirror_store = RedisMirrorStore(settings.storage.redis_url, namespace=settings.storage.mirror_collection)
            else:
                logger.warning("STORAGE_REDIS_URL not set; using in-memory mirror store")
                mirror_store = InMemoryMirrorStore()

        generator = generator or ContentGenerator(timeout_seconds=settings.llm.timeout_seconds)
        runner = runner or BackgroundTaskRunner()
        mirror = MirrorWriter(mirror_store)
        job = RegenerationJob(store=store, mirror=mirror, generator=generator)
        coordinator = CacheCoordinator(
            store=store,
            mirror=mirror,
            job=job,
            runner=runner,
            freshness_days=settings.cache.freshness_days,
        )
        repopulator = BulkRepopulator(
            store=store,
            job=job,
            error_preview=settings.repopulate.error_preview,
        )

        scheduler = None
        cfg = settings.repopulate
        if cfg.schedule_enabled:
            scheduler = RepopulateScheduler(
                repopulator,
                interval_seconds=cfg.interval_hours * 3600,
                days=cfg.days,
                provider=cfg.provider,
                limit=cfg.limit,
                concurrency=cfg.concurrency,
            )

        return cls(
            settings=settings,
            store=store,
            mirror_store=mirror_store,
            mirror=mirror,
            generator=generator,
            runner=runner,
            job=job,
            coordinator=coordinator,
            repopulator=repopulator,
            scheduler=scheduler,
        )

    async def start(self) -> None:
        logger.info(f"ENV CHECK: {self.settings.secrets_report()}")
        await self.store.start()
        await self.mirror_store.start()
        if self.scheduler is not None:
            self.scheduler.start()

    async def shutdown(self, grace_seconds: Optional[float] = None) -> None:
        if grace_seconds is None:
            grace_seconds = self.settings.server.shutdown_grace_seconds
        if self.scheduler is not None:
            await self.scheduler.stop()
        await self.runner.drain(timeout=grace_seconds)
        await self.generator.aclose()
        await self.mirror_store.close()
        await self.store.close()


_RUNTIME: Optional[ServiceRuntime] = None
_RUNTIME_LOCK = Lock()


def get_runtime() -> ServiceRuntime:
    """Build the process runtime on first call; later calls return the same one."""
    global _RUNTIME
    if _RUNTIME is None:
        with _RUNTIME_LOCK:
            if _RUNTIME is None:
                _RUNTIME = ServiceRuntime.build()
    return _RUNTIME


def set_runtime(runtime: Optional[ServiceRuntime]) -> None:
    """Install a prebuilt runtime (tests, CLI). ``None`` resets."""
    global _RUNTIME
    with _RUNTIME_LOCK:
        _RUNTIME = runtime
