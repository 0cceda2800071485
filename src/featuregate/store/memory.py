"""In-process record store.

Backs the test suite and embedded use. Each call runs without awaiting, so a
single call is atomic with respect to other coroutines on the same loop.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections import defaultdict
from datetime import UTC, datetime, timedelta

from featuregate.errors import UniqueViolation
from featuregate.store.base import (
    FEATURE_MODEL,
    FLAG_MODEL,
    MEMBER_MODEL,
    ORGANIZATION_MODEL,
    USER_MODEL,
    Record,
    RecordStore,
    SortBy,
    Where,
)

logger = logging.getLogger(__name__)

# model -> field tuples that must be unique when every field is non-null
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    FEATURE_MODEL: [("name",)],
    FLAG_MODEL: [("organizationId", "featureId"), ("userId", "featureId")],
    MEMBER_MODEL: [("organizationId", "userId")],
}

# parent model -> (child model, referencing field)
CASCADES: dict[str, list[tuple[str, str]]] = {
    FEATURE_MODEL: [(FLAG_MODEL, "featureId")],
    USER_MODEL: [(FLAG_MODEL, "userId"), (MEMBER_MODEL, "userId")],
    ORGANIZATION_MODEL: [(FLAG_MODEL, "organizationId"), (MEMBER_MODEL, "organizationId")],
}


class MemoryStore(RecordStore):
    """Dict-backed RecordStore with unique constraints and cascades."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Record]] = defaultdict(dict)
        self._last_timestamp: datetime | None = None

    def _now(self) -> datetime:
        now = datetime.now(UTC)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    @staticmethod
    def _matches(record: Record, where: list[Where] | None) -> bool:
        return all(clause.matches(record) for clause in where or [])

    def _check_unique(self, model: str, candidate: Record, exclude_id: str | None = None) -> None:
        for key in UNIQUE_KEYS.get(model, []):
            values = tuple(candidate.get(f) for f in key)
            if any(v is None for v in values):
                continue
            for record in self._tables[model].values():
                if record["id"] == exclude_id:
                    continue
                if tuple(record.get(f) for f in key) == values:
                    raise UniqueViolation(f"Duplicate {model} for {', '.join(key)}")

    async def find_one(
        self,
        model: str,
        where: list[Where],
        select: list[str] | None = None,
    ) -> Record | None:
        for record in self._tables[model].values():
            if self._matches(record, where):
                if select:
                    return {f: copy.deepcopy(record.get(f)) for f in select}
                return copy.deepcopy(record)
        return None

    async def find_many(
        self,
        model: str,
        where: list[Where] | None = None,
        sort_by: SortBy | None = None,
    ) -> list[Record]:
        rows = [copy.deepcopy(r) for r in self._tables[model].values() if self._matches(r, where)]
        if sort_by is not None:
            rows.sort(key=lambda r: r.get(sort_by.field), reverse=sort_by.direction == "desc")
        return rows

    async def create(self, model: str, data: Record) -> Record:
        now = self._now()
        record = {**copy.deepcopy(data), "createdAt": now, "updatedAt": now}
        record["id"] = str(data.get("id") or uuid.uuid4())
        if record["id"] in self._tables[model]:
            raise UniqueViolation(f"Duplicate {model} id {record['id']}")
        self._check_unique(model, record)
        self._tables[model][record["id"]] = record
        logger.debug("Created %s %s", model, record["id"])
        return copy.deepcopy(record)

    async def update(self, model: str, where: list[Where], patch: Record) -> Record | None:
        for record_id, record in self._tables[model].items():
            if not self._matches(record, where):
                continue
            updated = {**record, **copy.deepcopy(patch), "id": record_id, "updatedAt": self._now()}
            self._check_unique(model, updated, exclude_id=record_id)
            self._tables[model][record_id] = updated
            logger.debug("Updated %s %s: %s", model, record_id, sorted(patch))
            return copy.deepcopy(updated)
        return None

    async def delete(self, model: str, where: list[Where]) -> None:
        doomed = [rid for rid, r in self._tables[model].items() if self._matches(r, where)]
        for record_id in doomed:
            del self._tables[model][record_id]
            for child_model, ref_field in CASCADES.get(model, []):
                await self.delete(child_model, [Where(ref_field, record_id)])
        if doomed:
            logger.debug("Deleted %d %s record(s)", len(doomed), model)
