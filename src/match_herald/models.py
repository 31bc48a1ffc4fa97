"""
Data models shared between the stores, the poller and the notification sinks.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class GroupDescriptor(BaseModel):
    """A guild with its match post channel and enabled feature modules."""

    group_id: str
    destination_id: str | None = None
    enabled_features: list[str] = Field(default_factory=list)

    def is_pollable(self, feature: str = "match_posts") -> bool:
        """A guild is polled when it has a channel and the feature is enabled.

        An empty feature list means every feature is enabled.
        """
        if not self.destination_id:
            return False
        if self.enabled_features and feature not in self.enabled_features:
            return False
        return True


class TrackedBinding(BaseModel):
    """A chat user linked to a player account in a guild."""

    group_id: str
    subject_id: str
    name: str
    tag: str
    region: str
    display_name: str | None = None
    puuid: str | None = None

    @property
    def player(self) -> str:
        return f"{self.name}#{self.tag}"

    def is_complete(self) -> bool:
        return bool(self.subject_id and self.name and self.tag and self.region)


class PollMarker(BaseModel):
    """Last match id acted upon for a (guild, user) pair."""

    group_id: str
    subject_id: str
    last_activity_id: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ActivitySummary(BaseModel):
    """Per-player view of a finished match, built fresh every cycle."""

    activity_id: str
    player: str
    map_name: str = "Unknown map"
    mode: str = "Unknown mode"
    outcome: str
    score: str
    agent: str = "Unknown"
    kda: str = "0/0/0"
    standing_delta: int | None = None
    display_name: str | None = None

    kills: int | None = None
    deaths: int | None = None
    assists: int | None = None
    combat_score: int | None = None
    team_rounds_won: int | None = None
    enemy_rounds_won: int | None = None

    @property
    def is_win(self) -> bool:
        return self.outcome == "Victory"


class MatchRecord(BaseModel):
    """An announced match, kept for history lookups."""

    match_id: str
    subject_id: str
    puuid: str | None = None
    player_name: str
    player_tag: str
    region: str
    agent: str | None = None
    map: str | None = None
    mode: str | None = None
    result: str | None = None
    kills: int | None = None
    deaths: int | None = None
    assists: int | None = None
    score: int | None = None
    team_rounds_won: int | None = None
    enemy_rounds_won: int | None = None
    rr_change: int | None = None

    @classmethod
    def from_summary(
        cls, binding: TrackedBinding, summary: ActivitySummary
    ) -> "MatchRecord":
        return cls(
            match_id=summary.activity_id,
            subject_id=binding.subject_id,
            puuid=binding.puuid,
            player_name=binding.name,
            player_tag=binding.tag,
            region=binding.region,
            agent=summary.agent,
            map=summary.map_name,
            mode=summary.mode,
            result=summary.outcome,
            kills=summary.kills,
            deaths=summary.deaths,
            assists=summary.assists,
            score=summary.combat_score,
            team_rounds_won=summary.team_rounds_won,
            enemy_rounds_won=summary.enemy_rounds_won,
            rr_change=summary.standing_delta,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()
