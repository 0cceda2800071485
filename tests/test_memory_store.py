"""Tests for the in-process MemoryStore."""

import pytest

from featuregate.errors import UniqueViolation
from featuregate.store import FEATURE_MODEL, FLAG_MODEL, MemoryStore, SortBy, eq, in_


@pytest.fixture
def memory():
    return MemoryStore()


class TestMemoryStore:
    """Test the RecordStore contract on MemoryStore."""

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_timestamps(self, memory):
        record = await memory.create(FEATURE_MODEL, {"name": "beta", "active": True})

        assert record["id"]
        assert record["createdAt"] == record["updatedAt"]
        assert await memory.find_one(FEATURE_MODEL, [eq("id", record["id"])]) == record

    @pytest.mark.asyncio
    async def test_create_keeps_given_id(self, memory):
        record = await memory.create("user", {"id": "u1"})
        assert record["id"] == "u1"
        with pytest.raises(UniqueViolation):
            await memory.create("user", {"id": "u1"})

    @pytest.mark.asyncio
    async def test_returns_copies(self, memory):
        record = await memory.create(FEATURE_MODEL, {"name": "beta"})
        record["name"] = "mutated"
        assert (await memory.find_one(FEATURE_MODEL, [eq("id", record["id"])]))["name"] == "beta"

    @pytest.mark.asyncio
    async def test_unique_feature_name(self, memory):
        await memory.create(FEATURE_MODEL, {"name": "beta"})
        with pytest.raises(UniqueViolation):
            await memory.create(FEATURE_MODEL, {"name": "beta"})

    @pytest.mark.asyncio
    async def test_unique_flag_per_principal(self, memory):
        await memory.create(FLAG_MODEL, {"organizationId": "o1", "featureId": "f1", "enabled": True})
        with pytest.raises(UniqueViolation):
            await memory.create(FLAG_MODEL, {"organizationId": "o1", "featureId": "f1", "enabled": False})
        # Null columns never collide
        await memory.create(FLAG_MODEL, {"userId": "u1", "featureId": "f1", "enabled": True})
        await memory.create(FLAG_MODEL, {"organizationId": "o2", "featureId": "f1", "enabled": True})

    @pytest.mark.asyncio
    async def test_select(self, memory):
        record = await memory.create("user", {"id": "u1", "role": "admin", "email": "a@b.c"})
        assert await memory.find_one("user", [eq("id", record["id"])], select=["role"]) == {"role": "admin"}

    @pytest.mark.asyncio
    async def test_find_many_where_and_in(self, memory):
        a = await memory.create(FEATURE_MODEL, {"name": "a", "active": True})
        b = await memory.create(FEATURE_MODEL, {"name": "b", "active": False})
        await memory.create(FEATURE_MODEL, {"name": "c", "active": True})

        rows = await memory.find_many(FEATURE_MODEL, [in_("id", [a["id"], b["id"]]), eq("active", True)])

        assert [r["name"] for r in rows] == ["a"]

    @pytest.mark.asyncio
    async def test_find_many_sorted(self, memory):
        for name in ("a", "b", "c"):
            await memory.create(FEATURE_MODEL, {"name": name})
        rows = await memory.find_many(FEATURE_MODEL, sort_by=SortBy("createdAt", "desc"))
        assert [r["name"] for r in rows] == ["c", "b", "a"]

    @pytest.mark.asyncio
    async def test_update_merges_and_advances_updated_at(self, memory):
        record = await memory.create(FEATURE_MODEL, {"name": "beta", "displayName": "Beta", "active": True})

        updated = await memory.update(FEATURE_MODEL, [eq("id", record["id"])], {"active": False})

        assert updated["displayName"] == "Beta"
        assert updated["active"] is False
        assert updated["createdAt"] == record["createdAt"]
        assert updated["updatedAt"] > record["updatedAt"]

    @pytest.mark.asyncio
    async def test_update_no_match(self, memory):
        assert await memory.update(FEATURE_MODEL, [eq("id", "nope")], {"active": False}) is None

    @pytest.mark.asyncio
    async def test_update_enforces_unique(self, memory):
        await memory.create(FEATURE_MODEL, {"name": "a"})
        b = await memory.create(FEATURE_MODEL, {"name": "b"})
        with pytest.raises(UniqueViolation):
            await memory.update(FEATURE_MODEL, [eq("id", b["id"])], {"name": "a"})

    @pytest.mark.asyncio
    async def test_delete_feature_cascades(self, memory):
        feature = await memory.create(FEATURE_MODEL, {"name": "beta"})
        other = await memory.create(FEATURE_MODEL, {"name": "other"})
        await memory.create(FLAG_MODEL, {"organizationId": "o1", "featureId": feature["id"], "enabled": True})
        kept = await memory.create(FLAG_MODEL, {"organizationId": "o1", "featureId": other["id"], "enabled": True})

        await memory.delete(FEATURE_MODEL, [eq("id", feature["id"])])

        assert [f["id"] for f in await memory.find_many(FLAG_MODEL)] == [kept["id"]]

    @pytest.mark.asyncio
    async def test_delete_organization_cascades(self, memory):
        await memory.create("organization", {"id": "o1"})
        await memory.create("member", {"organizationId": "o1", "userId": "u1"})
        await memory.create(FLAG_MODEL, {"organizationId": "o1", "featureId": "f1", "enabled": True})

        await memory.delete("organization", [eq("id", "o1")])

        assert await memory.find_many("member") == []
        assert await memory.find_many(FLAG_MODEL) == []
