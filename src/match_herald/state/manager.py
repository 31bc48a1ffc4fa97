"""
Store abstractions for Match Herald.

Linked accounts, guild configuration, poll markers and match history live in
external storage. The poller only depends on the abstract interfaces below;
the in-memory implementations back local runs and tests.
"""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from ..models import GroupDescriptor, MatchRecord, PollMarker, TrackedBinding

logger = logging.getLogger(__name__)


class BindingStore(ABC):
    """Source of guilds to poll and the players linked in each."""

    @abstractmethod
    async def list_groups_with_polling_enabled(self) -> list[GroupDescriptor]:
        """
        Get guilds that have a match post channel configured.

        Returns:
            Guild descriptors, in a stable order
        """
        pass

    @abstractmethod
    async def list_bindings(self, group_id: str) -> list[TrackedBinding]:
        """
        Get linked players for a guild.

        Args:
            group_id: Guild id

        Returns:
            Bindings, in a stable order
        """
        pass


class StateStore(ABC):
    """Persisted last-seen match id per (guild, user) pair."""

    @abstractmethod
    async def get_last_activity_id(self, group_id: str, subject_id: str) -> str | None:
        """
        Get the last match id acted upon for a pair.

        Raises:
            PersistenceError: When the store cannot be read
        """
        pass

    @abstractmethod
    async def set_last_activity_id(
        self, group_id: str, subject_id: str, activity_id: str
    ) -> bool:
        """
        Record the last match id for a pair.

        Returns:
            True if the write succeeded
        """
        pass

    async def health_check(self) -> bool:
        """Check if the state backend is healthy."""
        return True


class MatchHistoryStore(ABC):
    """Record of matches that were announced."""

    @abstractmethod
    async def upsert_match(self, record: MatchRecord) -> bool:
        """Store a match, ignoring duplicates of (match_id, subject_id)."""
        pass

    @abstractmethod
    async def get_match_history(
        self, subject_id: str, limit: int = 10
    ) -> list[MatchRecord]:
        """Get the newest recorded matches for a user."""
        pass


class InMemoryBindingStore(BindingStore):
    """In-memory guild configuration and account links."""

    def __init__(self) -> None:
        self.groups: dict[str, GroupDescriptor] = {}
        self.bindings: dict[str, dict[str, TrackedBinding]] = {}

    def set_group(self, group: GroupDescriptor) -> None:
        self.groups[group.group_id] = group

    def add_binding(self, binding: TrackedBinding) -> None:
        self.bindings.setdefault(binding.group_id, {})[binding.subject_id] = binding

    def remove_binding(self, group_id: str, subject_id: str) -> bool:
        removed = self.bindings.get(group_id, {}).pop(subject_id, None)
        return removed is not None

    async def list_groups_with_polling_enabled(self) -> list[GroupDescriptor]:
        return [group for group in self.groups.values() if group.destination_id]

    async def list_bindings(self, group_id: str) -> list[TrackedBinding]:
        return list(self.bindings.get(group_id, {}).values())


class InMemoryStateStore(StateStore):
    """In-memory poll markers."""

    def __init__(self) -> None:
        self.markers: dict[tuple[str, str], PollMarker] = {}

    async def get_last_activity_id(self, group_id: str, subject_id: str) -> str | None:
        marker = self.markers.get((group_id, subject_id))
        return marker.last_activity_id if marker else None

    async def set_last_activity_id(
        self, group_id: str, subject_id: str, activity_id: str
    ) -> bool:
        self.markers[(group_id, subject_id)] = PollMarker(
            group_id=group_id,
            subject_id=subject_id,
            last_activity_id=activity_id,
        )
        logger.debug(f"Set last match for {group_id}/{subject_id} to {activity_id}")
        return True

    def get_marker(self, group_id: str, subject_id: str) -> PollMarker | None:
        """Get the stored marker for a pair, if any."""
        return self.markers.get((group_id, subject_id))

    def get_memory_stats(self) -> dict[str, Any]:
        """Get memory usage statistics."""
        return {
            "markers_count": len(self.markers),
            "groups_count": len({group_id for group_id, _ in self.markers}),
        }


class InMemoryMatchHistoryStore(MatchHistoryStore):
    """In-memory match history."""

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], tuple[datetime, MatchRecord]] = {}

    async def upsert_match(self, record: MatchRecord) -> bool:
        key = (record.match_id, record.subject_id)
        if key in self.records:
            return False
        self.records[key] = (datetime.now(UTC), record)
        return True

    async def get_match_history(
        self, subject_id: str, limit: int = 10
    ) -> list[MatchRecord]:
        rows = [
            (recorded_at, record)
            for recorded_at, record in self.records.values()
            if record.subject_id == subject_id
        ]
        rows.sort(key=lambda row: row[0], reverse=True)
        return [record for _, record in rows[:limit]]


class Stores:
    """The set of stores the poller is wired with."""

    def __init__(
        self,
        bindings: BindingStore,
        state: StateStore,
        history: MatchHistoryStore | None = None,
    ):
        self.bindings = bindings
        self.state = state
        self.history = history


class StoreFactory:
    """Factory for creating stores for the configured backend."""

    @staticmethod
    def create_stores(backend: str, **kwargs: Any) -> Stores:
        """
        Create stores for a storage backend.

        Args:
            backend: Backend name ('memory')
            **kwargs: Additional configuration options

        Returns:
            Stores instance

        Raises:
            ValueError: If backend is not supported
        """
        backend = backend.lower()

        if backend == "memory":
            logger.info("Creating in-memory stores")
            return Stores(
                bindings=InMemoryBindingStore(),
                state=InMemoryStateStore(),
                history=InMemoryMatchHistoryStore(),
            )
        raise ValueError(
            f"Unknown storage backend: {backend}. Supported backends: 'memory'"
        )

    @staticmethod
    def get_supported_backends() -> list[str]:
        """Get list of supported storage backends."""
        return ["memory"]
