"""Records, inputs and principals.

Stored records use camelCase field names (``displayName``, ``featureId``) so
they can be handed to any record store unchanged; the pydantic models expose
snake_case attributes and accept either spelling.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PrincipalMode = Literal["organization", "user"]


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """Dump with camelCase keys, the shape callers receive."""
        return self.model_dump(by_alias=True)


class Feature(_Record):
    """Global feature definition with its kill switch."""

    id: str
    name: str
    display_name: str
    description: str | None = None
    active: bool
    created_at: datetime
    updated_at: datetime


class Flag(_Record):
    """Per-principal override for one feature.

    Exactly one of ``organization_id`` and ``user_id`` is set, depending on the
    deployment's principal mode.
    """

    id: str
    organization_id: str | None = None
    user_id: str | None = None
    feature_id: str
    enabled: bool
    created_at: datetime
    updated_at: datetime


class FlagWithDetails(Flag):
    """A flag joined with its feature. Built on reads, never stored."""

    feature: Feature


class CreateFeatureInput(_Record):
    name: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    description: str | None = None
    active: bool = True


# Feature fields an update may never write, in either key style
IMMUTABLE_FIELDS = frozenset({"id", "name", "createdAt", "updatedAt", "created_at", "updated_at"})


class UpdateFeatureInput(_Record):
    """Partial update. Only fields explicitly present are written.

    ``description`` may be cleared with an explicit null; ``displayName`` and
    ``active`` may be omitted but never set to null.
    """

    display_name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    active: bool | None = None

    @field_validator("display_name", "active")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("may not be null")
        return value

    def patch(self) -> dict[str, Any]:
        """Return the camelCase patch of explicitly provided fields."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class ToggleFeatureInput(_Record):
    active: bool


class SetFlagInput(_Record):
    enabled: bool


@dataclass(frozen=True)
class OrganizationPrincipal:
    """Flags scoped to an organization."""

    id: str
    kind: ClassVar[PrincipalMode] = "organization"
    field: ClassVar[str] = "organizationId"
    model: ClassVar[str] = "organization"


@dataclass(frozen=True)
class UserPrincipal:
    """Flags scoped to a single user."""

    id: str
    kind: ClassVar[PrincipalMode] = "user"
    field: ClassVar[str] = "userId"
    model: ClassVar[str] = "user"


Principal = OrganizationPrincipal | UserPrincipal


def make_principal(mode: PrincipalMode, principal_id: str) -> Principal:
    """Build the principal variant for the configured mode."""
    if mode == "user":
        return UserPrincipal(principal_id)
    return OrganizationPrincipal(principal_id)


@dataclass(frozen=True)
class Session:
    """The caller's session as provided by the authentication layer.

    Attributes:
        user_id: Authenticated user id
        active_organization_id: Organization selected in the session, if any
    """

    user_id: str
    active_organization_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Session | None:
        """Parse ``{"user": {"id"}, "session": {"activeOrganizationId"}}``.

        Returns None when there is no user in the payload.
        """
        if not data:
            return None
        user = data.get("user") or {}
        if not user.get("id"):
            return None
        session = data.get("session") or {}
        return cls(
            user_id=str(user["id"]),
            active_organization_id=session.get("activeOrganizationId"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": {"id": self.user_id},
            "session": {"activeOrganizationId": self.active_organization_id},
        }
