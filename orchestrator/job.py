"""Regeneration job: one record from stale/missing to generated and stored."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from core import ContentRecord, Provider, RecordStatus, RequestKey
from generation import BaseContentGenerator
from storage import MirrorWriter, RecordStore
from utils.exceptions import GenerationError, StoreError, serialize_error


logger = logging.getLogger("visa_cache.jobs")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegenerationJob:
    """
    Drive one key through processing -> ready | error.

    Every transition writes the mirror first, then the record store; the two
    writes are isolated, so a failure in one never skips the other. The
    generator's failure is recorded as ``status=error`` (content and
    ``last_updated`` untouched) and re-raised.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        mirror: MirrorWriter,
        generator: BaseContentGenerator,
    ):
        self.store = store
        self.mirror = mirror
        self.generator = generator

    async def run(
        self,
        key: RequestKey,
        provider: Union[Provider, str] = Provider.OPENAI,
        *,
        doc_id: Optional[str] = None,
    ) -> ContentRecord:
        doc_id = doc_id or key.composite_id
        provider_name = Provider(provider).value if isinstance(provider, Provider) else str(provider)

        await self.mirror.mirror_status(doc_id, RecordStatus.PROCESSING, key)
        await self._mark_processing(key)

        try:
            generated = await self.generator.generate(key, provider_name)
            now = _utcnow()
            row = {
                **key.as_dict(),
                **generated.payload.model_dump(),
                "raw_json": generated.raw_json,
                "source": generated.provider,
                "status": RecordStatus.READY.value,
                "last_updated": now,
                "updated_at": now,
            }
            record = ContentRecord(**row)
            missing = record.missing_fields()
            if missing:
                raise GenerationError(
                    f"{provider_name} output is missing mandatory fields",
                    provider=provider_name,
                    key=key.as_dict(),
                    missing_fields=",".join(missing),
                )
            # Mirror from the row itself so a store failure still reaches clients.
            await self.mirror.mirror_payload(doc_id, record)
            stored = await self.store.upsert(row)
        except Exception as exc:
            logger.warning(f"Regeneration failed for {key} via {provider_name}: {serialize_error(exc)}")
            await self._record_failure(key, doc_id)
            raise

        logger.info(f"Regenerated {key} via {provider_name}")
        return stored

    async def _mark_processing(self, key: RequestKey) -> None:
        try:
            await self.store.upsert(
                {**key.as_dict(), "status": RecordStatus.PROCESSING.value, "updated_at": _utcnow()}
            )
        except StoreError as exc:
            logger.error(f"Could not mark {key} processing: {serialize_error(exc)}")

    async def _record_failure(self, key: RequestKey, doc_id: str) -> None:
        await self.mirror.mirror_status(doc_id, RecordStatus.ERROR, key)
        try:
            await self.store.update_fields(
                key, {"status": RecordStatus.ERROR.value, "updated_at": _utcnow()}
            )
        except StoreError as exc:
            logger.error(f"Could not mark {key} as error: {serialize_error(exc)}")
