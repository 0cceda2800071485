"""Tests for the feature resolution engine."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from featuregate.auth import StorePrincipalDirectory
from featuregate.errors import Conflict, InvalidInput, NotFound, UniqueViolation
from featuregate.models import CreateFeatureInput, Feature, Flag, OrganizationPrincipal, UserPrincipal
from featuregate.resolution import ResolutionEngine, join_flags
from featuregate.store import FLAG_MODEL, RecordStore

NOW = datetime(2026, 1, 1, tzinfo=UTC)


def make_feature(feature_id: str, active: bool = True) -> Feature:
    return Feature(
        id=feature_id,
        name=feature_id,
        display_name=feature_id.title(),
        active=active,
        created_at=NOW,
        updated_at=NOW,
    )


def make_flag(flag_id: str, feature_id: str) -> Flag:
    return Flag(
        id=flag_id,
        organization_id="org-1",
        feature_id=feature_id,
        enabled=True,
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.fixture
def engine(store):
    return ResolutionEngine(store, StorePrincipalDirectory(store))


async def create(engine: ResolutionEngine, name: str, active: bool = True) -> Feature:
    return await engine.create_feature(CreateFeatureInput(name=name, display_name=name.title(), active=active))


class TestJoinFlags:
    """Test the flag/feature inner join."""

    def test_drops_flags_without_feature(self):
        flags = [make_flag("x1", "a"), make_flag("x2", "missing"), make_flag("x3", "b")]
        joined = join_flags(flags, [make_feature("b"), make_feature("a")])

        assert [f.id for f in joined] == ["x1", "x3"]
        assert joined[0].feature.id == "a"
        assert joined[1].feature.id == "b"

    def test_empty(self):
        assert join_flags([], [make_feature("a")]) == []


class TestFeatures:
    """Test feature catalog rules."""

    @pytest.mark.asyncio
    async def test_create_defaults_active(self, engine):
        feature = await engine.create_feature(CreateFeatureInput(name="beta", display_name="Beta"))
        assert feature.active is True
        assert feature.description is None
        assert feature.created_at == feature.updated_at

    @pytest.mark.asyncio
    async def test_create_duplicate_name(self, engine):
        await create(engine, "beta")
        with pytest.raises(Conflict, match="already exists"):
            await create(engine, "beta")

    @pytest.mark.asyncio
    async def test_create_race_reported_as_conflict(self):
        """Test a unique violation from the store (lost race) becomes Conflict."""
        store = AsyncMock(spec=RecordStore)
        store.find_one.return_value = None
        store.create.side_effect = UniqueViolation("duplicate key")
        engine = ResolutionEngine(store, AsyncMock())

        with pytest.raises(Conflict):
            await engine.create_feature(CreateFeatureInput(name="beta", display_name="Beta"))

    @pytest.mark.asyncio
    async def test_list_newest_first(self, engine):
        for name in ("one", "two", "three"):
            await create(engine, name)
        assert [f.name for f in await engine.list_features()] == ["three", "two", "one"]

    @pytest.mark.asyncio
    async def test_update_missing_feature(self, engine):
        with pytest.raises(NotFound, match="Feature not found"):
            await engine.update_feature("nope", {"active": False})

    @pytest.mark.asyncio
    async def test_update_rejects_immutable_fields(self, engine):
        feature = await create(engine, "beta")
        with pytest.raises(InvalidInput, match="name"):
            await engine.update_feature(feature.id, {"name": "gamma"})

    @pytest.mark.asyncio
    async def test_update_rejects_null_required_fields(self, engine):
        feature = await create(engine, "beta")
        with pytest.raises(InvalidInput, match="displayName"):
            await engine.update_feature(feature.id, {"displayName": None, "description": None})
        with pytest.raises(InvalidInput, match="active"):
            await engine.update_feature(feature.id, {"active": None})

        [stored] = await engine.list_features()
        assert stored == feature

    @pytest.mark.asyncio
    async def test_update_writes_only_patch(self, engine):
        feature = await create(engine, "beta")
        updated = await engine.update_feature(feature.id, {"description": None, "active": False})

        assert updated.display_name == "Beta"
        assert updated.description is None
        assert updated.active is False
        assert updated.updated_at > feature.updated_at

    @pytest.mark.asyncio
    async def test_delete_missing_feature(self, engine):
        with pytest.raises(NotFound):
            await engine.delete_feature("nope")

    @pytest.mark.asyncio
    async def test_delete_cascades_flags(self, engine, store):
        feature = await create(engine, "beta")
        await engine.set_flag(OrganizationPrincipal("org-1"), feature.id, True)

        await engine.delete_feature(feature.id)

        assert await store.find_many(FLAG_MODEL) == []


class TestFlags:
    """Test flag writes and live-flag resolution."""

    @pytest.mark.asyncio
    async def test_set_flag_returns_details(self, engine):
        feature = await create(engine, "beta")
        flag = await engine.set_flag(OrganizationPrincipal("org-1"), feature.id, True)

        assert flag.organization_id == "org-1"
        assert flag.user_id is None
        assert flag.enabled is True
        assert flag.feature.id == feature.id

    @pytest.mark.asyncio
    async def test_set_flag_missing_feature(self, engine):
        with pytest.raises(NotFound, match="Feature not found"):
            await engine.set_flag(OrganizationPrincipal("org-1"), "nope", True)

    @pytest.mark.asyncio
    async def test_set_flag_inactive_feature(self, engine):
        feature = await create(engine, "beta", active=False)
        with pytest.raises(InvalidInput, match="Feature is not enabled globally"):
            await engine.set_flag(OrganizationPrincipal("org-1"), feature.id, True)

    @pytest.mark.asyncio
    async def test_set_flag_missing_principal(self, engine):
        feature = await create(engine, "beta")
        with pytest.raises(NotFound, match="Organization not found"):
            await engine.set_flag(OrganizationPrincipal("org-9"), feature.id, True)
        with pytest.raises(NotFound, match="User not found"):
            await engine.set_flag(UserPrincipal("user-9"), feature.id, True)

    @pytest.mark.asyncio
    async def test_set_flag_twice_conflicts(self, engine):
        """Test set never upserts, whatever enabled value is requested."""
        feature = await create(engine, "beta")
        principal = OrganizationPrincipal("org-1")
        await engine.set_flag(principal, feature.id, False)

        with pytest.raises(Conflict, match="Feature flag already exists"):
            await engine.set_flag(principal, feature.id, True)

    @pytest.mark.asyncio
    async def test_set_flag_race_reported_as_conflict(self):
        """Test a flag created between the duplicate check and the write becomes Conflict."""
        feature = make_feature("beta")
        store = AsyncMock(spec=RecordStore)
        store.find_one.side_effect = [feature.to_dict(), None]
        store.create.side_effect = UniqueViolation("duplicate key")
        directory = AsyncMock()
        directory.exists.return_value = True
        engine = ResolutionEngine(store, directory)

        with pytest.raises(Conflict, match="Feature flag already exists"):
            await engine.set_flag(OrganizationPrincipal("org-1"), feature.id, True)

        store.create.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_user_principal_flags(self, engine):
        feature = await create(engine, "beta")
        flag = await engine.set_flag(UserPrincipal("user-1"), feature.id, True)

        assert flag.user_id == "user-1"
        assert flag.organization_id is None
        assert [f.id for f in await engine.list_live_flags(UserPrincipal("user-1"))] == [flag.id]
        assert await engine.list_live_flags(OrganizationPrincipal("user-1")) == []

    @pytest.mark.asyncio
    async def test_remove_flag(self, engine):
        feature = await create(engine, "beta")
        principal = OrganizationPrincipal("org-1")
        await engine.set_flag(principal, feature.id, True)

        await engine.remove_flag(principal, feature.id)

        with pytest.raises(NotFound, match="Feature flag not found"):
            await engine.remove_flag(principal, feature.id)

    @pytest.mark.asyncio
    async def test_live_requires_both_switches(self, engine):
        """Test a flag is live only when enabled and its feature is active."""
        principal = OrganizationPrincipal("org-1")
        on = await create(engine, "on")
        disabled = await create(engine, "disabled")
        await engine.set_flag(principal, on.id, True)
        await engine.set_flag(principal, disabled.id, False)

        assert [f.feature.name for f in await engine.list_live_flags(principal)] == ["on"]

        await engine.update_feature(on.id, {"active": False})
        assert await engine.list_live_flags(principal) == []

        await engine.update_feature(on.id, {"active": True})
        assert [f.feature.name for f in await engine.list_live_flags(principal)] == ["on"]

    @pytest.mark.asyncio
    async def test_live_flags_skip_feature_query_when_empty(self):
        """Test no feature lookup happens for a principal without enabled flags."""
        store = AsyncMock(spec=RecordStore)
        store.find_many.return_value = []
        engine = ResolutionEngine(store, AsyncMock())

        assert await engine.list_live_flags(OrganizationPrincipal("org-1")) == []
        store.find_many.assert_awaited_once()
