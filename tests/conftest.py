"""
Pytest configuration and fixtures for Match Herald tests.
"""

import asyncio
from typing import Any

import pytest

from match_herald.config import PollingConfig, RateLimitConfig, Settings
from match_herald.exceptions import NotFoundError
from match_herald.models import GroupDescriptor, TrackedBinding
from match_herald.notifications import InMemoryNotificationSink
from match_herald.polling.cache import OriginCache, TTLCache
from match_herald.polling.orchestrator import PollingOrchestrator
from match_herald.polling.rate_limiter import DestinationRateLimiter
from match_herald.state.manager import (
    InMemoryBindingStore,
    InMemoryMatchHistoryStore,
    InMemoryStateStore,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeOriginClient:
    """Provider stand-in keyed by ``name#tag``."""

    def __init__(self) -> None:
        self.matches: dict[str, list[dict[str, Any]]] = {}
        self.errors: dict[str, Exception] = {}
        self.history: dict[str, list[dict[str, Any]]] = {}
        self.history_error: Exception | None = None
        self.match_calls: list[str] = []
        self.history_calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def get_recent_matches(
        self,
        region: str,
        name: str,
        tag: str,
        size: int = 5,
        mode: str | None = "competitive",
    ) -> list[dict[str, Any]]:
        player = f"{name}#{tag}"
        self.match_calls.append(player)
        if self.gate is not None:
            await self.gate.wait()
        if player in self.errors:
            raise self.errors[player]
        if player not in self.matches:
            raise NotFoundError("No match history found")
        return self.matches[player]

    async def get_standing_history(
        self, region: str, name: str, tag: str
    ) -> list[dict[str, Any]]:
        player = f"{name}#{tag}"
        self.history_calls.append(player)
        if self.history_error is not None:
            raise self.history_error
        return self.history.get(player, [])


def make_match(
    match_id: str,
    name: str = "Player",
    tag: str = "NA1",
    team: str = "Red",
    has_won: bool = True,
    rounds: tuple[int, int] = (13, 7),
    mode: str = "Competitive",
    map_name: str = "Ascent",
    agent: str = "Jett",
    stats: tuple[int, int, int] = (20, 12, 5),
) -> dict[str, Any]:
    """Build a provider match record for one player."""
    enemy = "Blue" if team == "Red" else "Red"
    kills, deaths, assists = stats
    return {
        "metadata": {"matchid": match_id, "map": map_name, "mode": mode},
        "players": {
            "all_players": [
                {
                    "name": name,
                    "tag": tag,
                    "team": team,
                    "character": agent,
                    "stats": {
                        "kills": kills,
                        "deaths": deaths,
                        "assists": assists,
                        "score": 5200,
                    },
                },
                {"name": "Other", "tag": "EU1", "team": enemy, "stats": {}},
            ]
        },
        "teams": {
            team.lower(): {"has_won": has_won, "rounds_won": rounds[0]},
            enemy.lower(): {"has_won": not has_won, "rounds_won": rounds[1]},
        },
    }


def make_binding(
    subject_id: str, name: str, group_id: str = "g1", tag: str = "NA1"
) -> TrackedBinding:
    return TrackedBinding(
        group_id=group_id, subject_id=subject_id, name=name, tag=tag, region="na"
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_settings() -> Settings:
    """Settings for testing."""
    return Settings(
        henrik_api_key="test-key",
        enable_polling=False,
        log_level="DEBUG",
        log_format="console",
    )


@pytest.fixture
def polling_config() -> PollingConfig:
    return PollingConfig(interval_seconds=300, initial_delay_seconds=0, concurrency=3)


@pytest.fixture
def rate_config() -> RateLimitConfig:
    return RateLimitConfig(destination_limit=5, destination_window_seconds=60)


@pytest.fixture
def origin() -> FakeOriginClient:
    return FakeOriginClient()


@pytest.fixture
def binding_store() -> InMemoryBindingStore:
    store = InMemoryBindingStore()
    store.set_group(GroupDescriptor(group_id="g1", destination_id="c1"))
    return store


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def history_store() -> InMemoryMatchHistoryStore:
    return InMemoryMatchHistoryStore()


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def destination_limiter(
    rate_config: RateLimitConfig, clock: FakeClock
) -> DestinationRateLimiter:
    return DestinationRateLimiter(rate_config, clock=clock)


@pytest.fixture
def orchestrator(
    origin: FakeOriginClient,
    binding_store: InMemoryBindingStore,
    state_store: InMemoryStateStore,
    history_store: InMemoryMatchHistoryStore,
    sink: InMemoryNotificationSink,
    destination_limiter: DestinationRateLimiter,
    polling_config: PollingConfig,
    clock: FakeClock,
) -> PollingOrchestrator:
    """Orchestrator wired to in-memory collaborators and a fake clock."""
    return PollingOrchestrator(
        origin_client=origin,  # type: ignore[arg-type]
        origin_cache=OriginCache(TTLCache(clock=clock), matches_ttl=120),
        binding_store=binding_store,
        state_store=state_store,
        notification_sink=sink,
        destination_limiter=destination_limiter,
        config=polling_config,
        history_store=history_store,
    )
