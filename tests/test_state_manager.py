"""
Tests for the store abstractions.

Covers the in-memory binding, poll marker and match history stores and the
store factory.
"""

import pytest
from conftest import make_binding

from match_herald.models import GroupDescriptor, MatchRecord, PollMarker
from match_herald.state.manager import (
    InMemoryBindingStore,
    InMemoryMatchHistoryStore,
    InMemoryStateStore,
    StateStore,
    StoreFactory,
)


class TestInMemoryBindingStore:
    """Test the InMemoryBindingStore implementation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryBindingStore()

    @pytest.mark.asyncio
    async def test_only_groups_with_destination_are_listed(self):
        self.store.set_group(GroupDescriptor(group_id="g1", destination_id="c1"))
        self.store.set_group(GroupDescriptor(group_id="g2"))

        groups = await self.store.list_groups_with_polling_enabled()

        assert [g.group_id for g in groups] == ["g1"]

    @pytest.mark.asyncio
    async def test_bindings_per_group(self):
        self.store.add_binding(make_binding("u1", "A"))
        self.store.add_binding(make_binding("u2", "B"))
        self.store.add_binding(make_binding("u1", "C", group_id="g2"))

        g1 = await self.store.list_bindings("g1")
        g2 = await self.store.list_bindings("g2")

        assert [b.subject_id for b in g1] == ["u1", "u2"]
        assert [b.name for b in g2] == ["C"]
        assert await self.store.list_bindings("unknown") == []

    @pytest.mark.asyncio
    async def test_relinking_replaces_binding(self):
        self.store.add_binding(make_binding("u1", "Old"))
        self.store.add_binding(make_binding("u1", "New"))

        bindings = await self.store.list_bindings("g1")

        assert [b.name for b in bindings] == ["New"]

    def test_remove_binding(self):
        self.store.add_binding(make_binding("u1", "A"))

        assert self.store.remove_binding("g1", "u1") is True
        assert self.store.remove_binding("g1", "u1") is False


class TestGroupDescriptor:
    """Test guild pollability."""

    def test_needs_destination(self):
        assert GroupDescriptor(group_id="g1").is_pollable() is False
        assert GroupDescriptor(group_id="g1", destination_id="c1").is_pollable()

    def test_feature_list(self):
        group = GroupDescriptor(
            group_id="g1", destination_id="c1", enabled_features=["leaderboard"]
        )

        assert group.is_pollable("match_posts") is False
        assert group.is_pollable("leaderboard") is True


class TestInMemoryStateStore:
    """Test the InMemoryStateStore implementation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryStateStore()

    @pytest.mark.asyncio
    async def test_marker_storage_and_retrieval(self):
        assert await self.store.get_last_activity_id("g1", "u1") is None

        assert await self.store.set_last_activity_id("g1", "u1", "m1") is True
        assert await self.store.get_last_activity_id("g1", "u1") == "m1"

        await self.store.set_last_activity_id("g1", "u1", "m2")
        assert await self.store.get_last_activity_id("g1", "u1") == "m2"

    @pytest.mark.asyncio
    async def test_markers_are_per_pair(self):
        await self.store.set_last_activity_id("g1", "u1", "m1")

        assert await self.store.get_last_activity_id("g2", "u1") is None
        assert await self.store.get_last_activity_id("g1", "u2") is None

    @pytest.mark.asyncio
    async def test_marker_records_pair(self):
        assert self.store.get_marker("g1", "u1") is None

        await self.store.set_last_activity_id("g1", "u1", "m1")
        marker = self.store.get_marker("g1", "u1")

        assert isinstance(marker, PollMarker)
        assert marker.group_id == "g1"
        assert marker.subject_id == "u1"
        assert marker.last_activity_id == "m1"
        assert marker.updated_at is not None

    @pytest.mark.asyncio
    async def test_memory_stats_and_health(self):
        await self.store.set_last_activity_id("g1", "u1", "m1")
        await self.store.set_last_activity_id("g1", "u2", "m1")
        await self.store.set_last_activity_id("g2", "u1", "m1")

        stats = self.store.get_memory_stats()

        assert stats == {"markers_count": 3, "groups_count": 2}
        assert await self.store.health_check() is True


class TestInMemoryMatchHistoryStore:
    """Test the InMemoryMatchHistoryStore implementation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryMatchHistoryStore()

    @staticmethod
    def record(match_id: str, subject_id: str = "u1") -> MatchRecord:
        return MatchRecord(
            match_id=match_id,
            subject_id=subject_id,
            player_name="Player",
            player_tag="NA1",
            region="na",
        )

    @pytest.mark.asyncio
    async def test_duplicates_are_ignored(self):
        assert await self.store.upsert_match(self.record("m1")) is True
        assert await self.store.upsert_match(self.record("m1")) is False
        assert await self.store.upsert_match(self.record("m1", "u2")) is True

    @pytest.mark.asyncio
    async def test_history_is_per_user_and_limited(self):
        for i in range(5):
            await self.store.upsert_match(self.record(f"m{i}"))
        await self.store.upsert_match(self.record("x1", "u2"))

        history = await self.store.get_match_history("u1", limit=3)

        assert len(history) == 3
        assert all(r.subject_id == "u1" for r in history)


class TestStoreFactory:
    """Test the StoreFactory."""

    def test_create_memory_stores(self):
        stores = StoreFactory.create_stores("memory")

        assert isinstance(stores.bindings, InMemoryBindingStore)
        assert isinstance(stores.state, InMemoryStateStore)
        assert isinstance(stores.state, StateStore)
        assert isinstance(stores.history, InMemoryMatchHistoryStore)

    def test_backend_name_is_case_insensitive(self):
        stores = StoreFactory.create_stores("MEMORY")

        assert isinstance(stores.state, InMemoryStateStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            StoreFactory.create_stores("postgres")

    def test_supported_backends(self):
        assert StoreFactory.get_supported_backends() == ["memory"]
