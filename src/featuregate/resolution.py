"""Feature resolution engine.

Decides which flags are live for a principal and guards every write to the
feature catalog and the flag table. A flag is live only when the flag row is
``enabled`` AND its feature is globally ``active``; neither side overrides the
other.

All checks are check-then-act against the store. Duplicate names and
duplicate flags that slip between the check and the write are caught by the
store's unique constraints and reported as Conflict.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from featuregate.errors import Conflict, InvalidInput, NotFound, UniqueViolation
from featuregate.models import IMMUTABLE_FIELDS, Feature, Flag, FlagWithDetails
from featuregate.store.base import FEATURE_MODEL, FLAG_MODEL, SortBy, eq, in_

if TYPE_CHECKING:
    from featuregate.auth import PrincipalDirectory
    from featuregate.models import CreateFeatureInput, Principal
    from featuregate.store.base import Record, RecordStore

logger = logging.getLogger(__name__)


def join_flags(flags: list[Flag], features: list[Feature]) -> list[FlagWithDetails]:
    """Inner-join flags to features by ``featureId``.

    Flags whose feature is missing from ``features`` are dropped silently.
    Flag order is preserved.
    """
    by_id = {f.id: f for f in features}
    return [
        FlagWithDetails(**flag.model_dump(), feature=by_id[flag.feature_id])
        for flag in flags
        if flag.feature_id in by_id
    ]


class ResolutionEngine:
    """Join and validation rules over a RecordStore.

    Attributes:
        store: Record store holding features and flags
        directory: Resolves whether a principal exists
    """

    def __init__(self, store: RecordStore, directory: PrincipalDirectory) -> None:
        self.store = store
        self.directory = directory

    # --- features -------------------------------------------------------

    async def get_feature(self, feature_id: str) -> Feature:
        record = await self.store.find_one(FEATURE_MODEL, [eq("id", feature_id)])
        if record is None:
            raise NotFound("Feature not found")
        return Feature.model_validate(record)

    async def list_features(self) -> list[Feature]:
        """All features, newest first."""
        records = await self.store.find_many(FEATURE_MODEL, sort_by=SortBy("createdAt", "desc"))
        return [Feature.model_validate(r) for r in records]

    async def create_feature(self, data: CreateFeatureInput) -> Feature:
        existing = await self.store.find_one(FEATURE_MODEL, [eq("name", data.name)], select=["id"])
        if existing:
            raise Conflict("Feature with this name already exists")
        try:
            record = await self.store.create(
                FEATURE_MODEL,
                {
                    "name": data.name,
                    "displayName": data.display_name,
                    "description": data.description or None,
                    "active": data.active,
                },
            )
        except UniqueViolation as e:
            logger.info("Concurrent create lost the race for feature name %r", data.name)
            raise Conflict("Feature with this name already exists") from e
        logger.info("Created feature %s (%s)", data.name, record["id"])
        return Feature.model_validate(record)

    async def update_feature(self, feature_id: str, patch: dict[str, Any]) -> Feature:
        """Merge ``patch`` into the feature.

        Only keys present in ``patch`` are written; ``name`` and ``id`` are
        immutable and rejected.
        """
        immutable = IMMUTABLE_FIELDS & set(patch)
        if immutable:
            raise InvalidInput(f"Cannot update immutable field(s): {', '.join(sorted(immutable))}")
        nulls = sorted(k for k in ("displayName", "active") if k in patch and patch[k] is None)
        if nulls:
            raise InvalidInput(f"Field(s) may not be null: {', '.join(nulls)}")
        await self.get_feature(feature_id)
        record = await self.store.update(FEATURE_MODEL, [eq("id", feature_id)], patch)
        if record is None:
            raise NotFound("Feature not found")
        logger.debug("Updated feature %s: %s", feature_id, sorted(patch))
        return Feature.model_validate(record)

    async def delete_feature(self, feature_id: str) -> None:
        """Delete a feature. The store cascades its flags."""
        await self.get_feature(feature_id)
        await self.store.delete(FEATURE_MODEL, [eq("id", feature_id)])
        logger.info("Deleted feature %s", feature_id)

    # --- flags ----------------------------------------------------------

    async def _find_flag(self, principal: Principal, feature_id: str) -> Record | None:
        return await self.store.find_one(
            FLAG_MODEL,
            [eq(principal.field, principal.id), eq("featureId", feature_id)],
            select=["id", "enabled"],
        )

    async def list_live_flags(self, principal: Principal) -> list[FlagWithDetails]:
        """Flags enabled for ``principal`` whose feature is globally active."""
        flag_records = await self.store.find_many(
            FLAG_MODEL,
            [eq(principal.field, principal.id), eq("enabled", True)],
        )
        if not flag_records:
            return []
        flags = [Flag.model_validate(r) for r in flag_records]
        feature_records = await self.store.find_many(
            FEATURE_MODEL,
            [in_("id", [f.feature_id for f in flags]), eq("active", True)],
        )
        features = [Feature.model_validate(r) for r in feature_records]
        live = join_flags(flags, features)
        logger.debug(
            "Resolved %d live flag(s) of %d enabled for %s %s",
            len(live),
            len(flags),
            principal.kind,
            principal.id,
        )
        return live

    async def set_flag(self, principal: Principal, feature_id: str, enabled: bool) -> FlagWithDetails:
        """Create the flag for (principal, feature).

        Raises:
            NotFound: Feature or principal does not exist
            InvalidInput: Feature is not globally active
            Conflict: A flag for the pair already exists
        """
        feature = await self.get_feature(feature_id)
        if not feature.active:
            raise InvalidInput("Feature is not enabled globally")
        if not await self.directory.exists(principal):
            raise NotFound(f"{principal.kind.capitalize()} not found")
        if await self._find_flag(principal, feature_id):
            raise Conflict("Feature flag already exists")
        try:
            record = await self.store.create(
                FLAG_MODEL,
                {principal.field: principal.id, "featureId": feature_id, "enabled": enabled},
            )
        except UniqueViolation as e:
            raise Conflict("Feature flag already exists") from e
        logger.info(
            "Set flag %s for %s %s (enabled=%s)", feature.name, principal.kind, principal.id, enabled
        )
        return FlagWithDetails(**Flag.model_validate(record).model_dump(), feature=feature)

    async def remove_flag(self, principal: Principal, feature_id: str) -> None:
        """Delete the flag for (principal, feature) by its internal id."""
        existing = await self._find_flag(principal, feature_id)
        if not existing:
            raise NotFound("Feature flag not found")
        await self.store.delete(FLAG_MODEL, [eq("id", existing["id"])])
        logger.info("Removed flag %s for %s %s", feature_id, principal.kind, principal.id)
