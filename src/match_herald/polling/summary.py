"""
Match summaries for the polling system.

Turns a raw provider match record into the per-player summary that is
announced. Summaries are rebuilt every cycle and never cached or stored.
"""

from typing import Any

from ..models import ActivitySummary


def latest_match_id(match: dict[str, Any] | None) -> str | None:
    """Get the stable id of a raw match record."""
    if not match:
        return None
    match_id = (match.get("metadata") or {}).get("matchid")
    return str(match_id) if match_id else None


def _find_player(match: dict[str, Any], name: str, tag: str) -> dict[str, Any] | None:
    players = ((match.get("players") or {}).get("all_players")) or []
    for player in players:
        if player.get("name") == name and player.get("tag") == tag:
            return player
    return None


def summarize_match_for_player(
    match: dict[str, Any], name: str, tag: str
) -> ActivitySummary | None:
    """
    Build the summary of ``match`` from the point of view of ``name#tag``.

    Returns:
        The summary, or None if the player or their team is missing from
        the record
    """
    match_id = latest_match_id(match)
    player = _find_player(match, name, tag)
    if not match_id or player is None:
        return None

    team_key = str(player.get("team") or "").lower()
    teams = match.get("teams") or {}
    team = teams.get(team_key)
    if not team:
        return None

    enemy_key = "blue" if team_key == "red" else "red"
    enemy_team = teams.get(enemy_key) or {}

    stats = player.get("stats") or {}
    kills = stats.get("kills")
    deaths = stats.get("deaths")
    assists = stats.get("assists")
    enemy_rounds = enemy_team.get("rounds_won")
    enemy_score = enemy_rounds if enemy_rounds is not None else "?"
    metadata = match.get("metadata") or {}

    return ActivitySummary(
        activity_id=match_id,
        player=f"{name}#{tag}",
        map_name=metadata.get("map") or "Unknown map",
        mode=metadata.get("mode") or "Unknown mode",
        outcome="Victory" if team.get("has_won") else "Defeat",
        score=f"{team.get('rounds_won')}:{enemy_score}",
        agent=player.get("character") or "Unknown",
        kda=f"{kills or 0}/{deaths or 0}/{assists or 0}",
        kills=kills,
        deaths=deaths,
        assists=assists,
        combat_score=stats.get("score"),
        team_rounds_won=team.get("rounds_won"),
        enemy_rounds_won=enemy_rounds,
    )


def find_standing_delta(
    history: list[dict[str, Any]] | None, match_id: str
) -> int | None:
    """
    Get the rank rating change recorded for ``match_id``, if any.

    Malformed entries and non-numeric deltas are ignored.
    """
    for entry in history or []:
        if not isinstance(entry, dict) or entry.get("match_id") != match_id:
            continue
        delta = entry.get("mmr_change_to_last_game")
        if isinstance(delta, bool):
            return None
        try:
            return int(delta)
        except (TypeError, ValueError):
            return None
    return None
