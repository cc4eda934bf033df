"""Repository for synced Linear entities (issues, comments, projects, initiatives, teams).

Each entity type has its own table keyed by (owner_id, linear_id). A row holds
the latest merged document plus indexed scalar columns derived from it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from itertools import groupby
from typing import Any, Protocol

import asyncpg

from connectors.linear.linear_models import (
    INDEXED_COLUMNS,
    RecordQuery,
    StoredRecord,
    SyncedEntityType,
    SyncedRecord,
)
from src.utils.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

NATURAL_KEY_COLUMN = "linear_id"

_UNAVAILABLE_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.CannotConnectNowError,
    asyncpg.TooManyConnectionsError,
    asyncpg.InterfaceError,
    OSError,
    TimeoutError,
)

_ORDER_BY_SQL = {
    "updated_at_desc": "updated_at DESC NULLS LAST",
    "created_at_asc": "created_at ASC NULLS LAST",
    "name_asc": "name ASC NULLS LAST",
}


def filterable_columns(entity_type: SyncedEntityType) -> set[str]:
    return {NATURAL_KEY_COLUMN, *INDEXED_COLUMNS[entity_type].model_fields}


def _validate_query(entity_type: SyncedEntityType, query: RecordQuery) -> None:
    allowed = filterable_columns(entity_type)
    unknown = (set(query.equals) | set(query.any_of)) - allowed
    if unknown:
        raise ValueError(f"Cannot filter {entity_type.table_name} by {sorted(unknown)}")
    if query.order_by == "name_asc" and "name" not in allowed:
        raise ValueError(f"{entity_type.table_name} has no name column to order by")


class SyncedEntityStore(Protocol):
    async def upsert(self, record: SyncedRecord) -> bool: ...

    async def upsert_many(self, records: Sequence[SyncedRecord]) -> int: ...

    async def get(
        self, entity_type: SyncedEntityType, owner_id: str, natural_key: str
    ) -> StoredRecord | None: ...

    async def query(
        self, entity_type: SyncedEntityType, owner_id: str, query: RecordQuery | None = None
    ) -> list[StoredRecord]: ...


class MemorySyncedEntityStore(SyncedEntityStore):
    """In-process store with the same merge semantics as the Postgres repository."""

    rows: dict[tuple[SyncedEntityType, str, str], StoredRecord]

    def __init__(self, reject_stale_updates: bool = False) -> None:
        self.rows = {}
        self.reject_stale_updates = reject_stale_updates

    async def upsert(self, record: SyncedRecord) -> bool:
        key = (record.entity_type, record.owner_id, record.natural_key)
        now = datetime.now(UTC)
        existing = self.rows.get(key)

        if existing is None:
            self.rows[key] = StoredRecord(
                entity_type=record.entity_type,
                natural_key=record.natural_key,
                owner_id=record.owner_id,
                document=dict(record.document),
                columns=record.columns.values(),
                created_at=record.created_at or now,
                updated_at=record.updated_at or now,
                synced_at=now,
            )
            return True

        if (
            self.reject_stale_updates
            and record.updated_at is not None
            and existing.updated_at is not None
            and record.updated_at < existing.updated_at
        ):
            return False

        self.rows[key] = existing.model_copy(
            update={
                "document": {**existing.document, **record.document},
                "columns": {**existing.columns, **record.columns.values()},
                "created_at": record.created_at or existing.created_at,
                "updated_at": record.updated_at or existing.updated_at,
                "synced_at": now,
            }
        )
        return True

    async def upsert_many(self, records: Sequence[SyncedRecord]) -> int:
        written = 0
        for record in records:
            if await self.upsert(record):
                written += 1
        return written

    async def get(
        self, entity_type: SyncedEntityType, owner_id: str, natural_key: str
    ) -> StoredRecord | None:
        return self.rows.get((entity_type, owner_id, natural_key))

    async def query(
        self, entity_type: SyncedEntityType, owner_id: str, query: RecordQuery | None = None
    ) -> list[StoredRecord]:
        query = query or RecordQuery()
        _validate_query(entity_type, query)

        def column(row: StoredRecord, name: str) -> Any:
            return row.natural_key if name == NATURAL_KEY_COLUMN else row.columns.get(name)

        matches = [
            row
            for (row_type, row_owner, _), row in self.rows.items()
            if row_type == entity_type
            and row_owner == owner_id
            and all(column(row, name) == value for name, value in query.equals.items())
            and all(column(row, name) in values for name, values in query.any_of.items())
        ]

        # None sorts last in every ordering, matching NULLS LAST
        if query.order_by == "updated_at_desc":
            with_ts = [r for r in matches if r.updated_at is not None]
            with_ts.sort(key=lambda r: r.updated_at, reverse=True)
            return with_ts + [r for r in matches if r.updated_at is None]
        if query.order_by == "created_at_asc":
            with_ts = [r for r in matches if r.created_at is not None]
            with_ts.sort(key=lambda r: r.created_at)
            return with_ts + [r for r in matches if r.created_at is None]
        named = [r for r in matches if r.columns.get("name") is not None]
        named.sort(key=lambda r: r.columns["name"])
        return named + [r for r in matches if r.columns.get("name") is None]


class PostgresSyncedEntityRepository(SyncedEntityStore):
    """asyncpg-backed store.

    Upserts merge the JSONB document shallowly (`data || EXCLUDED.data`) and
    only assign the indexed columns and timestamps present on the record, so a
    partial delivery never blanks fields it did not carry.
    """

    def __init__(self, db_pool: asyncpg.Pool, reject_stale_updates: bool = False):
        self.db_pool = db_pool
        self.reject_stale_updates = reject_stale_updates

    def _build_upsert(self, record: SyncedRecord) -> tuple[str, list[Any]]:
        table = record.entity_type.table_name
        column_values = record.columns.values()

        names = [NATURAL_KEY_COLUMN, "owner_id", "data"]
        params: list[Any] = [record.natural_key, record.owner_id, json.dumps(record.document)]
        for name, value in column_values.items():
            names.append(name)
            params.append(value)
        if record.created_at is not None:
            names.append("created_at")
            params.append(record.created_at)
        if record.updated_at is not None:
            names.append("updated_at")
            params.append(record.updated_at)

        placeholders = [
            f"${i}::jsonb" if name == "data" else f"${i}" for i, name in enumerate(names, start=1)
        ]
        assignments = [f"data = {table}.data || EXCLUDED.data", "synced_at = NOW()"]
        assignments += [f"{name} = EXCLUDED.{name}" for name in names[3:]]

        sql = f"""
            INSERT INTO {table} ({", ".join(names)}, synced_at)
            VALUES ({", ".join(placeholders)}, NOW())
            ON CONFLICT (owner_id, {NATURAL_KEY_COLUMN}) DO UPDATE SET
                {", ".join(assignments)}
        """
        if self.reject_stale_updates and record.updated_at is not None:
            sql += f"""
            WHERE {table}.updated_at IS NULL OR {table}.updated_at <= EXCLUDED.updated_at
            """
        sql += f"RETURNING {NATURAL_KEY_COLUMN}"
        return sql, params

    async def upsert(self, record: SyncedRecord) -> bool:
        """Insert or merge a record. Returns False when the stale-update guard skipped it."""
        sql, params = self._build_upsert(record)
        try:
            async with self.db_pool.acquire() as conn:
                row = await conn.fetchrow(sql, *params)
        except _UNAVAILABLE_ERRORS as e:
            raise StorageUnavailableError(f"Synced store unavailable: {e}") from e

        if row is None:
            logger.info(
                f"Skipped stale {record.entity_type.value} update for {record.natural_key}"
            )
            return False
        return True

    async def upsert_many(self, records: Sequence[SyncedRecord]) -> int:
        """Upsert a batch in one transaction, in input order. Returns the number of rows written.

        Consecutive records sharing a statement shape (same table and same set
        of present columns) go through a single executemany. With the stale
        guard on, each record is sent on its own so skipped rows are counted.
        """
        if not records:
            return 0

        statements = [self._build_upsert(record) for record in records]
        try:
            async with self.db_pool.acquire() as conn:
                async with conn.transaction():
                    if self.reject_stale_updates:
                        written = 0
                        for sql, params in statements:
                            if await conn.fetchrow(sql, *params) is not None:
                                written += 1
                        return written

                    for sql, run in groupby(statements, key=lambda statement: statement[0]):
                        await conn.executemany(sql, [params for _, params in run])
        except _UNAVAILABLE_ERRORS as e:
            raise StorageUnavailableError(f"Synced store unavailable: {e}") from e

        return len(records)

    async def get(
        self, entity_type: SyncedEntityType, owner_id: str, natural_key: str
    ) -> StoredRecord | None:
        sql = f"SELECT * FROM {entity_type.table_name} WHERE owner_id = $1 AND {NATURAL_KEY_COLUMN} = $2"
        try:
            async with self.db_pool.acquire() as conn:
                row = await conn.fetchrow(sql, owner_id, natural_key)
        except _UNAVAILABLE_ERRORS as e:
            raise StorageUnavailableError(f"Synced store unavailable: {e}") from e

        return self._row_to_record(entity_type, row) if row else None

    async def query(
        self, entity_type: SyncedEntityType, owner_id: str, query: RecordQuery | None = None
    ) -> list[StoredRecord]:
        query = query or RecordQuery()
        _validate_query(entity_type, query)

        if any(len(values) == 0 for values in query.any_of.values()):
            return []

        conditions = ["owner_id = $1"]
        params: list[Any] = [owner_id]
        for name, value in query.equals.items():
            params.append(value)
            conditions.append(f"{name} = ${len(params)}")
        for name, values in query.any_of.items():
            params.append(list(values))
            conditions.append(f"{name} = ANY(${len(params)})")

        sql = (
            f"SELECT * FROM {entity_type.table_name} WHERE {' AND '.join(conditions)} "
            f"ORDER BY {_ORDER_BY_SQL[query.order_by]}"
        )
        try:
            async with self.db_pool.acquire() as conn:
                rows = await conn.fetch(sql, *params)
        except _UNAVAILABLE_ERRORS as e:
            raise StorageUnavailableError(f"Synced store unavailable: {e}") from e

        return [self._row_to_record(entity_type, row) for row in rows]

    def _row_to_record(self, entity_type: SyncedEntityType, row: Any) -> StoredRecord:
        data = row["data"]
        # Pools without the jsonb codec hand back raw text
        if isinstance(data, str):
            data = json.loads(data)
        return StoredRecord(
            entity_type=entity_type,
            natural_key=row[NATURAL_KEY_COLUMN],
            owner_id=row["owner_id"],
            document=data or {},
            columns={name: row[name] for name in INDEXED_COLUMNS[entity_type].model_fields},
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            synced_at=row["synced_at"],
        )
