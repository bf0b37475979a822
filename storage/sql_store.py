"""
SQL record store
SQLAlchemy async engine; PostgreSQL (asyncpg) in production.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
    and_,
    delete,
    or_,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from core import CONTENT_FIELDS, KEY_FIELDS, ContentRecord, RecordStatus, RequestKey
from utils.exceptions import StoreError

from .base import RecordStore, staleness_cutoff


logger = logging.getLogger("visa_cache.store.sql")


def build_table(metadata: MetaData, name: str = "visa_requirements_cache") -> Table:
    """Record table: surrogate id, five key columns (unique together), content, bookkeeping."""
    columns = [Column("id", BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)]
    columns += [Column(name_, Text, nullable=False) for name_ in KEY_FIELDS]
    columns += [Column(name_, Text, nullable=True) for name_ in CONTENT_FIELDS]
    columns += [
        Column("status", Text, nullable=True),
        Column("source", Text, nullable=True),
        Column("raw_json", JSON().with_variant(postgresql.JSONB, "postgresql"), nullable=True),
        Column("last_updated", DateTime(timezone=True), nullable=True, index=True),
        Column("updated_at", DateTime(timezone=True), nullable=True),
    ]
    return Table(
        name,
        metadata,
        *columns,
        UniqueConstraint(*KEY_FIELDS, name=f"uq_{name}_request_key"),
    )


_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SqlRecordStore(RecordStore):
    """Record store over one SQL table with upsert-on-conflict."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        *,
        engine: Optional[AsyncEngine] = None,
        table_name: str = "visa_requirements_cache",
        create_schema: bool = True,
    ):
        if engine is None and not database_url:
            raise StoreError("database_url or engine is required", operation="init")
        self._engine = engine or create_async_engine(database_url, pool_pre_ping=True)
        self.metadata = MetaData()
        self.table = build_table(self.metadata, table_name)
        self._create_schema = create_schema

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    async def start(self) -> None:
        if not self._create_schema:
            return
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(self.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StoreError(f"schema creation failed: {exc}", operation="start") from exc
        logger.info(f"Record store ready (table={self.table.name}, dialect={self.dialect_name})")

    async def close(self) -> None:
        await self._engine.dispose()

    def stale_clause(self, cutoff: datetime):
        """SQL form of ``is_stale_row``."""
        c = self.table.c
        never_generated = and_(
            c.last_updated.is_(None),
            or_(c.status == RecordStatus.ERROR.value, c.updated_at < cutoff),
        )
        return or_(c.last_updated < cutoff, never_generated)

    def expired_clause(self, cutoff: datetime):
        """SQL form of ``is_expired_row``."""
        c = self.table.c
        return or_(c.last_updated < cutoff, and_(c.last_updated.is_(None), c.updated_at < cutoff))

    def _key_clause(self, key: RequestKey):
        return and_(*[self.table.c[name] == getattr(key, name) for name in KEY_FIELDS])

    def build_upsert(self, row: Dict[str, Any], dialect_name: Optional[str] = None):
        """INSERT ... ON CONFLICT (key columns) DO UPDATE of the columns present in ``row``."""
        insert_fn = _INSERT_BY_DIALECT.get(dialect_name or self.dialect_name)
        if insert_fn is None:
            raise StoreError(f"upsert not supported for dialect {dialect_name or self.dialect_name}", operation="upsert")

        values = {name: value for name, value in row.items() if name in self.table.c and name != "id"}
        missing = [name for name in KEY_FIELDS if not values.get(name)]
        if missing:
            raise StoreError(f"row is missing key fields: {missing}", operation="upsert")

        stmt = insert_fn(self.table).values(**values)
        set_ = {name: stmt.excluded[name] for name in values if name not in KEY_FIELDS}
        if not set_:
            # DO NOTHING would suppress RETURNING for existing rows
            set_ = {KEY_FIELDS[0]: stmt.excluded[KEY_FIELDS[0]]}
        stmt = stmt.on_conflict_do_update(index_elements=list(KEY_FIELDS), set_=set_)
        return stmt.returning(*self.table.c)

    async def upsert(self, row: Dict[str, Any]) -> ContentRecord:
        stmt = self.build_upsert(row)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
                stored = result.mappings().one()
        except SQLAlchemyError as exc:
            raise StoreError(f"upsert failed: {exc}", operation="upsert") from exc
        return ContentRecord(**dict(stored))

    async def find_one(self, key: RequestKey) -> Optional[ContentRecord]:
        stmt = select(self.table).where(self._key_clause(key)).limit(1)
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                found = result.mappings().first()
        except SQLAlchemyError as exc:
            raise StoreError(f"lookup failed: {exc}", operation="find_one") from exc
        return ContentRecord(**dict(found)) if found else None

    async def update_fields(self, key: RequestKey, fields: Dict[str, Any]) -> None:
        values = {name: value for name, value in fields.items() if name in self.table.c and name not in KEY_FIELDS}
        if not values:
            return
        stmt = update(self.table).where(self._key_clause(key)).values(**values)
        try:
            async with self._engine.begin() as conn:
                await conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(f"update failed: {exc}", operation="update_fields") from exc

    async def find_stale(self, cutoff: datetime, limit: int) -> List[ContentRecord]:
        stmt = select(self.table).where(self.stale_clause(cutoff)).limit(max(0, int(limit)))
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.mappings().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"stale scan failed: {exc}", operation="find_stale") from exc
        return [ContentRecord(**dict(row)) for row in rows]

    async def purge_older_than(self, days: float) -> int:
        stmt = delete(self.table).where(self.expired_clause(staleness_cutoff(days)))
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(f"purge failed: {exc}", operation="purge_older_than") from exc
        return int(result.rowcount or 0)
