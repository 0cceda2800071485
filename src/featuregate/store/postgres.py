"""PostgreSQL record store backed by asyncpg.

Models map to tables of the same (quoted, camelCase) name. ``feature`` and
``featureFlag`` are owned by featuregate and created by ``create_schema``;
``user``, ``organization`` and ``member`` belong to the authentication system
and are only read.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import asyncpg

from featuregate.errors import StoreError, UniqueViolation
from featuregate.store.base import Record, RecordStore, SortBy, Where

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS "feature" (
    "id" TEXT PRIMARY KEY,
    "name" TEXT NOT NULL UNIQUE,
    "displayName" TEXT NOT NULL,
    "description" TEXT,
    "active" BOOLEAN NOT NULL DEFAULT TRUE,
    "createdAt" TIMESTAMPTZ NOT NULL,
    "updatedAt" TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS "featureFlag" (
    "id" TEXT PRIMARY KEY,
    "organizationId" TEXT,
    "userId" TEXT,
    "featureId" TEXT NOT NULL REFERENCES "feature" ("id") ON DELETE CASCADE,
    "enabled" BOOLEAN NOT NULL,
    "createdAt" TIMESTAMPTZ NOT NULL,
    "updatedAt" TIMESTAMPTZ NOT NULL,
    CONSTRAINT "featureFlag_organization_feature_key" UNIQUE ("organizationId", "featureId"),
    CONSTRAINT "featureFlag_user_feature_key" UNIQUE ("userId", "featureId")
);

CREATE INDEX IF NOT EXISTS "featureFlag_featureId_idx" ON "featureFlag" ("featureId");
"""


def quote(identifier: str) -> str:
    """Quote a table or column name, rejecting anything but plain identifiers."""
    if not _IDENTIFIER.match(identifier):
        raise StoreError(f"Invalid identifier: {identifier!r}")
    return f'"{identifier}"'


def build_where(where: list[Where] | None, start: int = 1) -> tuple[str, list[Any]]:
    """Render AND-ed clauses as SQL with positional parameters.

    Args:
        where: Clauses to render
        start: Index of the first ``$n`` placeholder

    Returns:
        Tuple of (``WHERE ...`` fragment or empty string, parameter values)
    """
    if not where:
        return "", []
    parts: list[str] = []
    args: list[Any] = []
    for offset, clause in enumerate(where):
        placeholder = f"${start + offset}"
        if clause.operator == "in":
            parts.append(f"{quote(clause.field)} = ANY({placeholder})")
            args.append(list(clause.value))
        else:
            parts.append(f"{quote(clause.field)} = {placeholder}")
            args.append(clause.value)
    return " WHERE " + " AND ".join(parts), args


class PostgresStore(RecordStore):
    """RecordStore over an asyncpg connection pool.

    Use as an async context manager, or call ``connect``/``close`` explicitly.
    """

    def __init__(self, database_url: str, *, min_size: int = 1, max_size: int = 10) -> None:
        self.database_url = database_url
        self.min_size = min_size
        self.max_size = max_size
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self.database_url, min_size=self.min_size, max_size=self.max_size
            )
            logger.debug("Opened PostgreSQL pool (max_size=%d)", self.max_size)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> PostgresStore:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def create_schema(self) -> None:
        """Create the feature and featureFlag tables if they are missing."""
        await self._execute(SCHEMA_SQL)
        logger.info("Feature tables ready")

    async def _pool_or_connect(self) -> asyncpg.Pool:
        if self._pool is None:
            await self.connect()
        assert self._pool is not None
        return self._pool

    async def _fetch(self, query: str, *args: Any) -> list[Record]:
        pool = await self._pool_or_connect()
        try:
            rows = await pool.fetch(query, *args)
        except asyncpg.exceptions.UniqueViolationError as e:
            raise UniqueViolation(str(e)) from e
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Query failed: %s: %s", type(e).__name__, e)
            raise StoreError(f"Store query failed: {e}") from e
        return [dict(row) for row in rows]

    async def _execute(self, query: str, *args: Any) -> None:
        pool = await self._pool_or_connect()
        try:
            await pool.execute(query, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Statement failed: %s: %s", type(e).__name__, e)
            raise StoreError(f"Store statement failed: {e}") from e

    async def find_one(
        self,
        model: str,
        where: list[Where],
        select: list[str] | None = None,
    ) -> Record | None:
        columns = ", ".join(quote(c) for c in select) if select else "*"
        clause, args = build_where(where)
        rows = await self._fetch(f"SELECT {columns} FROM {quote(model)}{clause} LIMIT 1", *args)
        return rows[0] if rows else None

    async def find_many(
        self,
        model: str,
        where: list[Where] | None = None,
        sort_by: SortBy | None = None,
    ) -> list[Record]:
        clause, args = build_where(where)
        order = ""
        if sort_by is not None:
            direction = "DESC" if sort_by.direction == "desc" else "ASC"
            order = f" ORDER BY {quote(sort_by.field)} {direction}"
        return await self._fetch(f"SELECT * FROM {quote(model)}{clause}{order}", *args)

    async def create(self, model: str, data: Record) -> Record:
        now = datetime.now(UTC)
        record = {**data, "createdAt": now, "updatedAt": now}
        record["id"] = str(data.get("id") or uuid.uuid4())
        columns = list(record)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        query = (
            f"INSERT INTO {quote(model)} ({', '.join(quote(c) for c in columns)}) "
            f"VALUES ({placeholders}) RETURNING *"
        )
        rows = await self._fetch(query, *record.values())
        return rows[0]

    async def update(self, model: str, where: list[Where], patch: Record) -> Record | None:
        table = quote(model)
        assignments = [f"{quote(field)} = ${i}" for i, field in enumerate(patch, start=1)]
        # updatedAt must move forward even when two writes share a clock tick
        assignments.append('"updatedAt" = GREATEST(clock_timestamp(), "updatedAt" + INTERVAL \'1 microsecond\')')
        clause, args = build_where(where, start=len(patch) + 1)
        query = (
            f"UPDATE {table} SET {', '.join(assignments)} "
            f'WHERE "id" = (SELECT "id" FROM {table}{clause} LIMIT 1) RETURNING *'
        )
        rows = await self._fetch(query, *patch.values(), *args)
        return rows[0] if rows else None

    async def delete(self, model: str, where: list[Where]) -> None:
        clause, args = build_where(where)
        await self._execute(f"DELETE FROM {quote(model)}{clause}", *args)
