"""featuregate - access-gated feature flags with before/after operation hooks."""

from featuregate.errors import (
    Conflict,
    FeatureGateError,
    Forbidden,
    HookError,
    InvalidInput,
    NotFound,
    StoreError,
    Unauthorized,
    UniqueViolation,
)
from featuregate.models import (
    Feature,
    Flag,
    FlagWithDetails,
    OrganizationPrincipal,
    Session,
    UserPrincipal,
)
from featuregate.registry import FeatureRegistry
from featuregate.results import OperationResult

__all__ = [
    "Conflict",
    "Feature",
    "FeatureGateError",
    "FeatureRegistry",
    "Flag",
    "FlagWithDetails",
    "Forbidden",
    "HookError",
    "InvalidInput",
    "NotFound",
    "OperationResult",
    "OrganizationPrincipal",
    "Session",
    "StoreError",
    "Unauthorized",
    "UniqueViolation",
    "UserPrincipal",
]
