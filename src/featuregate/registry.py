"""featuregate registry - the nine operations behind the hook pipeline.

Each public coroutine takes the caller's session plus its primary input and
returns an OperationResult; failures never escape as exceptions. The main
logic of every operation checks the session first (Unauthorized), then the
operation's authorization tier, then validates its primary input
(InvalidInput), then delegates to the ResolutionEngine. Hooks see the input
as sent, so a before-hook may complete a payload that would not validate.

Authorization tiers:
    admin          create/list/update/delete/toggle feature, set/remove flag
    member         get flags for a principal
    authenticated  get available features for the caller
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from featuregate.auth import StoreMembershipLookup, StorePrincipalDirectory, StoreRoleLookup
from featuregate.errors import Forbidden, InvalidInput, Unauthorized
from featuregate.models import (
    IMMUTABLE_FIELDS,
    CreateFeatureInput,
    OrganizationPrincipal,
    SetFlagInput,
    ToggleFeatureInput,
    UpdateFeatureInput,
    UserPrincipal,
    make_principal,
)
from featuregate.pipeline.executor import HookPipeline
from featuregate.pipeline.hook import (
    CreateFeatureArgs,
    DeleteFeatureArgs,
    GetAvailableArgs,
    GetFlagsArgs,
    ListFeaturesArgs,
    RemoveFlagArgs,
    SetFlagArgs,
    ToggleFeatureArgs,
    UpdateFeatureArgs,
    coerce_input,
    coerce_update,
)
from featuregate.resolution import ResolutionEngine
from featuregate.results import OperationResult

if TYPE_CHECKING:
    from featuregate.auth import MembershipLookup, PrincipalDirectory, RoleLookup
    from featuregate.config import FeatureGateConfig
    from featuregate.models import Feature, FlagWithDetails, PrincipalMode, Session
    from featuregate.pipeline.hook import HookTable
    from featuregate.store.base import RecordStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

ADMIN_REQUIRED = "Forbidden: Admin access required"
NOT_A_MEMBER = "Forbidden: Not a member of this organization"
NOT_YOUR_FLAGS = "Forbidden: Cannot read another user's flags"

# Messages for inputs that fail validation, keyed by input model
_INVALID_INPUT_MESSAGES: dict[type[BaseModel], str] = {
    CreateFeatureInput: "name and displayName are required",
    UpdateFeatureInput: "Invalid feature update",
    ToggleFeatureInput: "active must be a boolean",
    SetFlagInput: "enabled must be a boolean",
}


def parse_input(model: type[M], data: M | dict[str, Any] | None) -> M:
    """Validate a primary input given as a model or a camelCase/snake_case dict.

    Raises:
        InvalidInput: ``data`` does not validate
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        raise InvalidInput(_INVALID_INPUT_MESSAGES.get(model, "Invalid input")) from e


class FeatureRegistry:
    """Access-gated feature registry.

    Attributes:
        engine: Resolution engine over the record store
        pipeline: Hook pipeline wrapping every operation
        principal_mode: ``organization`` or ``user``
        extra: Keys merged into every HookContext
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        hooks: HookTable | None = None,
        role_lookup: RoleLookup | None = None,
        membership: MembershipLookup | None = None,
        directory: PrincipalDirectory | None = None,
        principal_mode: PrincipalMode = "organization",
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.store = store
        self.role_lookup = role_lookup or StoreRoleLookup(store)
        self.membership = membership or StoreMembershipLookup(store)
        self.engine = ResolutionEngine(store, directory or StorePrincipalDirectory(store))
        self.pipeline = HookPipeline(hooks)
        self.principal_mode = principal_mode
        self.extra = dict(extra or {})
        logger.debug("Feature registry ready (principal=%s)", principal_mode)

    @classmethod
    def from_config(cls, store: RecordStore, config: FeatureGateConfig | None = None) -> FeatureRegistry:
        """Build a registry with store-backed collaborators and configured hooks."""
        if config is None:
            from featuregate.config import get_config

            config = get_config()
        return cls(
            store,
            hooks=config.load_hooks(),
            role_lookup=StoreRoleLookup(store, config.admin_roles),
            principal_mode=config.principal,
            extra={"audit_log_level": config.audit_log_level},
        )

    # --- authorization --------------------------------------------------

    @staticmethod
    def _require_session(session: Session | None) -> Session:
        if session is None:
            raise Unauthorized()
        return session

    async def _require_admin(self, session: Session | None) -> Session:
        session = self._require_session(session)
        if not await self.role_lookup.is_admin(session.user_id):
            raise Forbidden(ADMIN_REQUIRED)
        return session

    def _principal(self, principal_id: str) -> OrganizationPrincipal | UserPrincipal:
        return make_principal(self.principal_mode, principal_id)

    # --- features -------------------------------------------------------

    async def create_feature(
        self,
        session: Session | None,
        data: CreateFeatureInput | dict[str, Any],
    ) -> OperationResult:
        """Create a feature. Admin only; ``active`` defaults to true."""

        async def action(args: CreateFeatureArgs) -> Feature:
            await self._require_admin(session)
            return await self.engine.create_feature(parse_input(CreateFeatureInput, args.input))

        args = CreateFeatureArgs(input=coerce_input(CreateFeatureInput, data))
        return await self.pipeline.run(args, action, session, self.extra)

    async def list_features(self, session: Session | None) -> OperationResult:
        """All features, newest first. Admin only."""

        async def action(args: ListFeaturesArgs) -> list[Feature]:
            await self._require_admin(session)
            return await self.engine.list_features()

        return await self.pipeline.run(ListFeaturesArgs(), action, session, self.extra)

    async def update_feature(
        self,
        session: Session | None,
        feature_id: str,
        data: UpdateFeatureInput | dict[str, Any],
    ) -> OperationResult:
        """Partially update ``displayName``, ``description`` and ``active``.

        Only fields present in ``data`` are written; an explicit null clears
        ``description``, while ``displayName`` and ``active`` reject null.
        Admin only.
        """

        async def action(args: UpdateFeatureArgs) -> Feature:
            await self._require_admin(session)
            if isinstance(args.input, dict):
                immutable = IMMUTABLE_FIELDS & set(args.input)
                if immutable:
                    raise InvalidInput(f"Cannot update immutable field(s): {', '.join(sorted(immutable))}")
            payload = parse_input(UpdateFeatureInput, args.input)
            return await self.engine.update_feature(args.feature_id, payload.patch())

        args = UpdateFeatureArgs(feature_id=feature_id, input=coerce_update(data))
        return await self.pipeline.run(args, action, session, self.extra)

    async def delete_feature(self, session: Session | None, feature_id: str) -> OperationResult:
        """Delete a feature and, by cascade, its flags. Admin only."""

        async def action(args: DeleteFeatureArgs) -> dict[str, bool]:
            await self._require_admin(session)
            await self.engine.delete_feature(args.feature_id)
            return {"success": True}

        return await self.pipeline.run(DeleteFeatureArgs(feature_id=feature_id), action, session, self.extra)

    async def toggle_feature(
        self,
        session: Session | None,
        feature_id: str,
        data: ToggleFeatureInput | dict[str, Any] | bool,
    ) -> OperationResult:
        """Flip the global kill switch of a feature. Admin only."""
        if isinstance(data, ToggleFeatureInput):
            active = data.active
        elif isinstance(data, dict):
            active = data.get("active")
        else:
            active = data

        async def action(args: ToggleFeatureArgs) -> Feature:
            await self._require_admin(session)
            payload = parse_input(ToggleFeatureInput, {"active": args.active})
            return await self.engine.update_feature(args.feature_id, {"active": payload.active})

        return await self.pipeline.run(
            ToggleFeatureArgs(feature_id=feature_id, active=active), action, session, self.extra
        )

    # --- flags ----------------------------------------------------------

    async def set_feature_flag(
        self,
        session: Session | None,
        principal_id: str,
        feature_id: str,
        data: SetFlagInput | dict[str, Any] | bool = True,
    ) -> OperationResult:
        """Create the flag for (principal, feature). Never upserts. Admin only."""
        if isinstance(data, bool):
            data = SetFlagInput(enabled=data)

        async def action(args: SetFlagArgs) -> FlagWithDetails:
            await self._require_admin(session)
            payload = parse_input(SetFlagInput, args.input)
            return await self.engine.set_flag(args.principal, args.feature_id, payload.enabled)

        args = SetFlagArgs(
            principal=self._principal(principal_id),
            feature_id=feature_id,
            input=coerce_input(SetFlagInput, data),
        )
        return await self.pipeline.run(args, action, session, self.extra)

    async def remove_feature_flag(
        self,
        session: Session | None,
        principal_id: str,
        feature_id: str,
    ) -> OperationResult:
        """Delete the flag for (principal, feature). Admin only."""

        async def action(args: RemoveFlagArgs) -> dict[str, bool]:
            await self._require_admin(session)
            await self.engine.remove_flag(args.principal, args.feature_id)
            return {"success": True}

        args = RemoveFlagArgs(principal=self._principal(principal_id), feature_id=feature_id)
        return await self.pipeline.run(args, action, session, self.extra)

    async def get_feature_flags(self, session: Session | None, principal_id: str) -> OperationResult:
        """Live flags of a principal.

        In organization mode the caller must be a member of the organization.
        In user mode the caller must be that user, or an admin.
        """

        async def action(args: GetFlagsArgs) -> list[FlagWithDetails]:
            caller = self._require_session(session)
            principal = args.principal
            if isinstance(principal, OrganizationPrincipal):
                if not await self.membership.is_member(principal.id, caller.user_id):
                    raise Forbidden(NOT_A_MEMBER)
            elif principal.id != caller.user_id and not await self.role_lookup.is_admin(caller.user_id):
                raise Forbidden(NOT_YOUR_FLAGS)
            return await self.engine.list_live_flags(principal)

        return await self.pipeline.run(
            GetFlagsArgs(principal=self._principal(principal_id)), action, session, self.extra
        )

    async def get_available_features(self, session: Session | None) -> OperationResult:
        """Live flags for the caller's own principal.

        In organization mode this is the session's active organization; an
        empty list (not an error) is returned when there is none or the
        caller is not a member of it.
        """

        async def action(args: GetAvailableArgs) -> list[FlagWithDetails]:
            caller = self._require_session(session)
            if self.principal_mode == "user":
                return await self.engine.list_live_flags(UserPrincipal(caller.user_id))

            organization_id = caller.active_organization_id
            if not organization_id:
                return []
            if not await self.membership.is_member(organization_id, caller.user_id):
                logger.debug("User %s is not a member of active organization %s", caller.user_id, organization_id)
                return []
            return await self.engine.list_live_flags(OrganizationPrincipal(organization_id))

        return await self.pipeline.run(GetAvailableArgs(), action, session, self.extra)
