"""
Event ingest: decoded packet stream -> per-player action logs.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from botsight.analysis.models import ActionEvent, PlayerActionLog
from botsight.core.constants import COMMAND_EVENT, SELECTION_EVENT, THRESHOLDS, ActionKind
from botsight.core.schemas import DecodedEvent

logger = logging.getLogger(__name__)


def _to_action(event: DecodedEvent, player_id: int, timestamp_ms: float) -> ActionEvent | None:
    event_type = event.get("event_type")
    payload = event.get("payload") or {}

    if event_type == COMMAND_EVENT:
        return ActionEvent(
            player_id=player_id,
            timestamp_ms=timestamp_ms,
            kind=ActionKind.COMMAND,
            command_name=payload.get("command_name") or "UNKNOWN",
        )
    if event_type == SELECTION_EVENT:
        unit_ids = payload.get("selected_unit_ids") or []
        return ActionEvent(
            player_id=player_id,
            timestamp_ms=timestamp_ms,
            kind=ActionKind.SELECTION,
            selected_unit_count=len(unit_ids),
        )
    return None


def group_actions(events: Iterable[DecodedEvent]) -> dict[int, PlayerActionLog]:
    """
    Split an ordered event stream into per-player action logs.

    Packets without a player id or a game time are dropped, and packet types
    other than commands and selections are ignored. Stream order is preserved
    within each player.
    """
    logs: dict[int, PlayerActionLog] = {}
    dropped = 0

    for event in events:
        player_id = event.get("player_id")
        seconds = event.get("game_time_seconds")
        if player_id is None or seconds is None:
            dropped += 1
            continue

        action = _to_action(event, player_id, float(seconds) * 1000)
        if action is None:
            continue

        log = logs.get(player_id)
        if log is None:
            log = logs[player_id] = PlayerActionLog(player_id=player_id)
        log.append(action)

    if dropped:
        logger.debug(f"Dropped {dropped} packets without a player id or game time")
    return logs


def ingest_events(
    events: Iterable[DecodedEvent],
    min_actions: int = THRESHOLDS.min_actions,
) -> dict[int, PlayerActionLog]:
    """Group events per player and keep only players with at least `min_actions` actions."""
    logs = group_actions(events)
    kept = {pid: log for pid, log in logs.items() if len(log) >= min_actions}

    excluded = len(logs) - len(kept)
    if excluded:
        logger.debug(f"Excluded {excluded} players with fewer than {min_actions} actions")
    return kept
