"""Tests for event ingest - per-player grouping, packet filtering, min-action cut."""

from __future__ import annotations

from botsight.analysis.ingest import group_actions, ingest_events
from botsight.core.constants import ActionKind


def cmd(player_id, seconds, name="MOVE"):
    return {
        "event_type": "COMMAND",
        "game_time_seconds": seconds,
        "player_id": player_id,
        "payload": {"command_name": name},
    }


def sel(player_id, seconds, units=3):
    return {
        "event_type": "SELECT",
        "game_time_seconds": seconds,
        "player_id": player_id,
        "payload": {"selected_unit_ids": list(range(units))},
    }


class TestGroupActions:
    """Test splitting the packet stream into per-player logs."""

    def test_groups_by_player_in_stream_order(self):
        events = [cmd(1, 1.0), cmd(2, 1.1), sel(1, 1.5), cmd(2, 2.0), cmd(1, 2.25)]
        logs = group_actions(events)

        assert set(logs) == {1, 2}
        assert logs[1].timestamps == [1000.0, 1500.0, 2250.0]
        assert logs[2].timestamps == [1100.0, 2000.0]

    def test_action_kinds(self):
        logs = group_actions([cmd(1, 1.0), sel(1, 2.0, units=12)])
        first, second = logs[1].actions

        assert first.kind is ActionKind.COMMAND
        assert first.command_name == "MOVE"
        assert second.kind is ActionKind.SELECTION
        assert second.selected_unit_count == 12

    def test_packets_without_player_are_dropped(self):
        anonymous = {"event_type": "COMMAND", "game_time_seconds": 1.0, "payload": {}}
        logs = group_actions([anonymous, cmd(1, 2.0)])

        assert list(logs) == [1]
        assert len(logs[1]) == 1

    def test_packets_without_game_time_are_dropped(self):
        untimed = {"event_type": "COMMAND", "game_time_seconds": None, "player_id": 1}
        missing = {"event_type": "COMMAND", "player_id": 1, "payload": {}}
        logs = group_actions([cmd(1, 1.0), untimed, missing, cmd(1, 2.0)])

        assert logs[1].timestamps == [1000.0, 2000.0]

    def test_other_packet_types_are_ignored(self):
        chat = {"event_type": "CHAT", "game_time_seconds": 1.0, "player_id": 1}
        logs = group_actions([chat])
        assert logs == {}

    def test_command_histogram(self):
        events = [cmd(1, 1.0, "MOVE"), cmd(1, 2.0, "MOVE"), cmd(1, 3.0, "ATTACK"), sel(1, 4.0)]
        logs = group_actions(events)

        assert logs[1].command_counts == {"MOVE": 2, "ATTACK": 1}

    def test_missing_command_name(self):
        event = {"event_type": "COMMAND", "game_time_seconds": 1.0, "player_id": 1}
        logs = group_actions([event])

        assert logs[1].actions[0].command_name == "UNKNOWN"
        assert logs[1].command_counts["UNKNOWN"] == 1

    def test_commands_and_selections_views(self):
        logs = group_actions([cmd(1, 1.0), sel(1, 2.0), sel(1, 3.0)])
        log = logs[1]

        assert len(log.commands) == 1
        assert len(log.selections) == 2
        assert len(log) == 3


class TestIngestEvents:
    """Test the minimum-action filter."""

    def test_player_below_minimum_excluded(self):
        events = [cmd(1, i * 0.5) for i in range(19)] + [cmd(2, i * 0.5) for i in range(20)]
        logs = ingest_events(events)

        assert 1 not in logs
        assert len(logs[2]) == 20

    def test_selections_count_towards_minimum(self):
        events = [cmd(1, i * 0.5) for i in range(10)] + [sel(1, 10 + i) for i in range(10)]
        logs = ingest_events(events)
        assert len(logs[1]) == 20

    def test_custom_minimum(self):
        events = [cmd(1, i * 0.5) for i in range(5)]
        assert ingest_events(events, min_actions=5)[1].player_id == 1
        assert ingest_events(events, min_actions=6) == {}

    def test_empty_stream(self):
        assert ingest_events([]) == {}
