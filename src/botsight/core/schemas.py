"""
BotSight Data Contracts

Shapes handed over by the upstream replay decoder. The decoder itself (binary
format, decompression, download) lives outside this package; anything it
produces must fit these dictionaries.

Producer: the replay decoder (injected into ReplayAnalyzer)
Consumers: analysis/ingest.py, pipeline/orchestrator.py
"""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict


class DecodedEvent(TypedDict):
    """One decoded packet, in stream order."""

    event_type: str  # "COMMAND", "SELECT", or anything else (ignored)
    game_time_seconds: NotRequired[float | None]  # packets without one are dropped
    player_id: NotRequired[int]  # absent for packets not tied to a player
    # COMMAND: {"command_name": str}
    # SELECT: {"selected_unit_ids": list[int]}
    payload: NotRequired[dict[str, Any]]


class RosterEntry(TypedDict):
    """Player roster metadata for one game."""

    player_id: int  # per-game slot, matches DecodedEvent.player_id
    user_id: int  # account id, stable across games
    name: str
    team_id: NotRequired[int]
    ally_team_id: NotRequired[int]
    skill: NotRequired[str]
    rank: NotRequired[int]


class GameMeta(TypedDict):
    """Game-level metadata."""

    game_id: str
    map_name: str
    duration_ms: int
    start_time: NotRequired[str]
    engine_version: NotRequired[str]


class DecodedGame(TypedDict):
    """Everything the decoder yields for one replay file."""

    meta: GameMeta
    players: list[RosterEntry]
    events: list[DecodedEvent]
    filename: NotRequired[str]
