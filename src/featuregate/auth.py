"""Identity collaborators: role lookup, membership and principal directory.

The registry depends on the protocols only. The Store* implementations read
the authentication system's ``user``, ``member`` and ``organization`` records
through the same RecordStore the registry uses.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from featuregate.store.base import MEMBER_MODEL, USER_MODEL, eq

if TYPE_CHECKING:
    from featuregate.models import Principal
    from featuregate.store.base import RecordStore

logger = logging.getLogger(__name__)


class RoleLookup(Protocol):
    async def is_admin(self, user_id: str) -> bool: ...


class MembershipLookup(Protocol):
    async def is_member(self, organization_id: str, user_id: str) -> bool: ...


class PrincipalDirectory(Protocol):
    async def exists(self, principal: Principal) -> bool: ...


class StoreRoleLookup:
    """Admin check against ``user.role``.

    Roles are stored as a comma separated string (``"admin,user"``); a user is
    an admin when any of their roles is in ``admin_roles``.
    """

    def __init__(self, store: RecordStore, admin_roles: list[str] | None = None) -> None:
        self.store = store
        self.admin_roles = frozenset(admin_roles or ["admin"])

    async def is_admin(self, user_id: str) -> bool:
        user = await self.store.find_one(USER_MODEL, [eq("id", user_id)], select=["role"])
        if not user or not user.get("role"):
            logger.debug("User %s has no role, not an admin", user_id)
            return False
        roles = {r.strip() for r in str(user["role"]).split(",")}
        admin = bool(roles & self.admin_roles)
        logger.debug("User %s roles=%s admin=%s", user_id, sorted(roles), admin)
        return admin


class StoreMembershipLookup:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def is_member(self, organization_id: str, user_id: str) -> bool:
        membership = await self.store.find_one(
            MEMBER_MODEL,
            [eq("organizationId", organization_id), eq("userId", user_id)],
            select=["id"],
        )
        member = membership is not None
        logger.debug("User %s member of organization %s: %s", user_id, organization_id, member)
        return member


class StorePrincipalDirectory:
    """Looks principals up in the ``organization`` or ``user`` model."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def exists(self, principal: Principal) -> bool:
        record = await self.store.find_one(principal.model, [eq("id", principal.id)], select=["id"])
        return record is not None
