"""Generic record store contract.

The registry only talks to storage through this interface: five async calls
over named models with AND-ed ``Where`` clauses. Records are plain dicts with
camelCase keys.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal

Operator = Literal["eq", "in"]
Record = dict[str, Any]

FEATURE_MODEL = "feature"
FLAG_MODEL = "featureFlag"
USER_MODEL = "user"
ORGANIZATION_MODEL = "organization"
MEMBER_MODEL = "member"


@dataclass(frozen=True)
class Where:
    """A single filter clause.

    Attributes:
        field: Record field name
        value: Value to compare (a list for ``in``)
        operator: ``eq`` or ``in``
    """

    field: str
    value: Any
    operator: Operator = "eq"

    def matches(self, record: Record) -> bool:
        actual = record.get(self.field)
        if self.operator == "in":
            return actual in self.value
        return actual == self.value


@dataclass(frozen=True)
class SortBy:
    field: str
    direction: Literal["asc", "desc"] = "asc"


def eq(field: str, value: Any) -> Where:
    return Where(field, value, "eq")


def in_(field: str, values: list[Any]) -> Where:
    return Where(field, list(values), "in")


class RecordStore(ABC):
    """Async record store used by the registry.

    Implementations assign ``id``, ``createdAt`` and ``updatedAt`` on create,
    advance ``updatedAt`` on update, enforce unique constraints by raising
    UniqueViolation, and cascade flag deletion when a feature is deleted.
    """

    @abstractmethod
    async def find_one(
        self,
        model: str,
        where: list[Where],
        select: list[str] | None = None,
    ) -> Record | None:
        """Return the first matching record, optionally narrowed to ``select``."""

    @abstractmethod
    async def find_many(
        self,
        model: str,
        where: list[Where] | None = None,
        sort_by: SortBy | None = None,
    ) -> list[Record]:
        """Return every matching record."""

    @abstractmethod
    async def create(self, model: str, data: Record) -> Record:
        """Insert a record and return it with generated fields."""

    @abstractmethod
    async def update(self, model: str, where: list[Where], patch: Record) -> Record | None:
        """Apply ``patch`` to the first matching record and return it."""

    @abstractmethod
    async def delete(self, model: str, where: list[Where]) -> None:
        """Delete every matching record."""
