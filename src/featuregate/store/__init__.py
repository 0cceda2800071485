"""Record stores for features and flags."""

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
    eq,
    in_,
)
from featuregate.store.memory import MemoryStore

__all__ = [
    "FEATURE_MODEL",
    "FLAG_MODEL",
    "MEMBER_MODEL",
    "ORGANIZATION_MODEL",
    "USER_MODEL",
    "MemoryStore",
    "Record",
    "RecordStore",
    "SortBy",
    "Where",
    "eq",
    "in_",
]
