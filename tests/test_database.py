"""Tests for the baseline store - idempotence, rollback, rollups, baseline and history queries."""

from __future__ import annotations

import threading
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from botsight.analysis.models import (
    ActivityStats,
    Flag,
    GameAnalysisResult,
    IntervalStats,
    PlayerGameResult,
)
from botsight.core.constants import FlagKind, Severity
from botsight.core.errors import StoreWriteError
from botsight.infra.database import BaselineStore


def make_player(user_id, name=None, flags=(), ultra=1.0, top=5.0, apm=60.0, score=None):
    flags = list(flags)
    return PlayerGameResult(
        player_id=user_id % 16,
        user_id=user_id,
        name=name or f"player{user_id}",
        stats=IntervalStats(
            interval_count=500,
            avg_interval_ms=400.0,
            stddev_interval_ms=320.0,
            coeff_variation=0.8,
            ultra_fast_pct=ultra,
            very_fast_pct=ultra + 2,
            fast_pct=ultra + 8,
            dominant_interval_ms=120,
            dominant_interval_pct=top,
        ),
        activity=ActivityStats(
            total_actions=501, total_commands=400, total_selections=101, apm=apm
        ),
        flags=flags,
        suspicion_score=score if score is not None else 0,
        skill="[25.0]",
        rank=3,
        team_id=0,
        ally_team_id=0,
    )


def make_game(game_id, players, start_time="2024-01-01T12:00:00", map_name="Comet Catcher"):
    return GameAnalysisResult(
        game_id=game_id,
        filename=f"{game_id}.json",
        map_name=map_name,
        duration_ms=1_200_000,
        start_time=start_time,
        engine_version="105.1",
        players=players,
    )


def critical(kind=FlagKind.ULTRA_FAST):
    return Flag(kind, Severity.CRITICAL, 40.0, "40.0% actions at game tick limit (<=33ms)")


def high(kind=FlagKind.LOW_VARIANCE):
    return Flag(kind, Severity.HIGH, 0.1, "Suspiciously consistent timing (CV: 0.100)")


@pytest.fixture
def store(tmp_path):
    store = BaselineStore(tmp_path / "analysis.db")
    yield store
    store.close()


class TestRecordGame:
    """Test persisting games."""

    def test_records_everything(self, store):
        game = make_game("g1", [make_player(1, flags=[critical()], score=100), make_player(2)])

        assert store.record_game(game) is True
        assert store.game_exists("g1")
        assert store.get_global_stats() == {
            "total_games": 1,
            "total_players": 2,
            "total_player_games": 2,
            "total_flags": 1,
        }

    def test_second_write_is_skipped(self, store):
        game = make_game("g1", [make_player(1), make_player(2)])
        store.record_game(game)
        before = store.get_global_stats()

        assert store.record_game(game) is False
        assert store.get_global_stats() == before

    def test_replace_overwrites_rows(self, store):
        store.record_game(make_game("g1", [make_player(1, flags=[critical()], score=100)]))
        replaced = make_game("g1", [make_player(1, flags=[], score=0)])

        assert store.record_game(replaced, replace=True) is True
        stats = store.get_global_stats()
        assert stats["total_player_games"] == 1
        assert stats["total_flags"] == 0
        assert store.find_player(1)["avg_suspicion_score"] == 0.0

    def test_replace_refreshes_players_left_out(self, store):
        original = make_game("g1", [make_player(1), make_player(2, flags=[critical()], score=100)])
        store.record_game(original)

        store.record_game(make_game("g1", [make_player(1)]), replace=True)

        left_out = store.find_player(2)
        assert left_out["total_games"] == 0
        assert left_out["total_flags"] == 0
        assert left_out["avg_suspicion_score"] == 0.0
        assert store.find_player(1)["total_games"] == 1

    def test_skipped_result_rejected(self, store):
        with pytest.raises(ValueError):
            store.record_game(GameAnalysisResult.skip("g1"))

    def test_unknown_game(self, store):
        assert not store.game_exists("missing")

    def test_memory_store(self):
        store = BaselineStore(":memory:")
        store.record_game(make_game("g1", [make_player(1)]))
        assert store.game_exists("g1")
        store.close()

    def test_memory_store_reader_waits_for_open_write(self):
        store = BaselineStore(":memory:")
        mid_write = threading.Event()
        reader_done = threading.Event()
        rollup = BaselineStore._update_player_rollup

        def paused_rollup(self, session, user_id):
            mid_write.set()
            reader_done.wait(timeout=0.5)
            rollup(self, session, user_id)

        def reader():
            mid_write.wait(timeout=5)
            store.game_exists("other")
            reader_done.set()

        thread = threading.Thread(target=reader)
        thread.start()
        with patch.object(BaselineStore, "_update_player_rollup", paused_rollup):
            assert store.record_game(make_game("g1", [make_player(1)])) is True
        thread.join(timeout=5)

        assert reader_done.is_set()
        assert store.game_exists("g1")
        assert store.find_player(1)["total_games"] == 1
        store.close()


class TestTransactions:
    """Test that a failed write leaves nothing behind."""

    def test_constraint_violation_rolls_back(self, store):
        # Same account twice in one game violates the (game, user) constraint
        game = make_game("g1", [make_player(1), make_player(1, name="clone")])

        with pytest.raises(StoreWriteError) as exc_info:
            store.record_game(game)

        assert exc_info.value.game_id == "g1"
        assert not store.game_exists("g1")
        assert store.get_global_stats()["total_player_games"] == 0
        assert store.get_global_stats()["total_players"] == 0

    def test_failure_after_inserts_rolls_back_game(self, store):
        game = make_game("g1", [make_player(1, flags=[critical()], score=100)])

        with patch.object(
            BaselineStore, "_update_player_rollup", side_effect=SQLAlchemyError("disk full")
        ):
            with pytest.raises(StoreWriteError, match="disk full"):
                store.record_game(game)

        assert store.get_global_stats() == {
            "total_games": 0,
            "total_players": 0,
            "total_player_games": 0,
            "total_flags": 0,
        }

    def test_store_usable_after_failure(self, store):
        with pytest.raises(StoreWriteError):
            store.record_game(make_game("bad", [make_player(1), make_player(1)]))

        assert store.record_game(make_game("good", [make_player(1)])) is True


class TestPlayerRollup:
    """Test the per-player aggregate."""

    def test_rollup_across_games(self, store):
        store.record_game(make_game("g1", [make_player(1, flags=[critical()], score=100)]))
        store.record_game(make_game("g2", [make_player(1, flags=[high(), high()], score=50)]))
        store.record_game(make_game("g3", [make_player(1, score=0)]))

        player = store.find_player(1)
        assert player["total_games"] == 3
        assert player["total_flags"] == 3
        assert player["avg_suspicion_score"] == 50.0

    def test_latest_name_wins(self, store):
        store.record_game(make_game("g1", [make_player(1, name="Alpha")]))
        store.record_game(make_game("g2", [make_player(1, name="Beta")]))

        assert store.find_player(1)["name"] == "Beta"


class TestBaselineStats:
    """Test the population aggregate."""

    def test_empty_store(self, store):
        baseline = store.get_baseline_stats()
        assert baseline.sample_size == 0
        assert not baseline.usable

    def test_sample_size_increases(self, store):
        sizes = []
        for i in range(4):
            store.record_game(make_game(f"g{i}", [make_player(10 + i), make_player(20 + i)]))
            sizes.append(store.get_baseline_stats().sample_size)

        assert sizes == [2, 4, 6, 8]

    def test_averages(self, store):
        players = [
            make_player(1, ultra=10.0, top=20.0, apm=100.0),
            make_player(2, ultra=20.0, top=40.0, apm=200.0),
        ]
        store.record_game(make_game("g1", players))
        baseline = store.get_baseline_stats()

        assert baseline.avg_ultra_fast_pct == pytest.approx(15.0)
        assert baseline.avg_top_interval_pct == pytest.approx(30.0)
        assert baseline.avg_apm == pytest.approx(150.0)
        assert baseline.avg_cv == pytest.approx(0.8)

    def test_exclude_subject(self, store):
        store.record_game(make_game("g1", [make_player(1, ultra=50.0), make_player(2, ultra=2.0)]))
        store.record_game(make_game("g2", [make_player(1, ultra=50.0), make_player(3, ultra=4.0)]))

        baseline = store.get_baseline_stats(exclude_user_id=1)
        assert baseline.sample_size == 2
        assert baseline.avg_ultra_fast_pct == pytest.approx(3.0)
        assert store.get_baseline_stats().sample_size == 4

    def test_usable_above_ten(self, store):
        for i in range(11):
            store.record_game(make_game(f"g{i}", [make_player(100 + i)]))
            assert store.get_baseline_stats().usable == (i + 1 > 10)


class TestMetricPercentile:
    """Test percentile lookups."""

    def test_empty_store_is_median(self, store):
        assert store.get_metric_percentile("apm", 100.0) == 50.0

    def test_percentile(self, store):
        players = [make_player(i, apm=apm) for i, apm in enumerate([10.0, 20.0, 30.0, 40.0], 1)]
        store.record_game(make_game("g1", players))

        assert store.get_metric_percentile("apm", 20.0) == 50.0
        assert store.get_metric_percentile("apm", 5.0) == 0.0
        assert store.get_metric_percentile("apm", 40.0) == 100.0

    def test_unknown_metric(self, store):
        with pytest.raises(ValueError):
            store.get_metric_percentile("apm; DROP TABLE players", 1.0)


class TestHistoryQueries:
    """Test player and game lookups."""

    @pytest.fixture
    def populated(self, store):
        store.record_game(
            make_game(
                "g1",
                [
                    make_player(1, name="Bot", flags=[critical(), high()], score=125),
                    make_player(2, name="Human"),
                ],
                start_time="2024-01-01T12:00:00",
            )
        )
        store.record_game(
            make_game(
                "g2",
                [
                    make_player(1, name="Bot", flags=[critical()], score=100),
                    make_player(3, name="Other", score=3),
                ],
                start_time="2024-01-02T12:00:00",
                map_name="Tabula",
            )
        )
        return store

    def test_suspicious_players(self, populated):
        players = populated.get_suspicious_players(limit=2)

        assert [p["user_id"] for p in players] == [1, 3]
        assert players[0]["critical_flags"] == 2
        assert players[0]["high_flags"] == 1
        assert players[0]["total_games"] == 2
        assert players[1]["critical_flags"] == 0

    def test_find_player(self, populated):
        assert populated.find_player("bot")["user_id"] == 1
        assert populated.find_player("2")["name"] == "Human"
        assert populated.find_player(3)["name"] == "Other"
        assert populated.find_player("nobody") is None

    def test_player_history(self, populated):
        history = populated.get_player_history(1)

        assert [h["game_id"] for h in history] == ["g2", "g1"]
        assert history[0]["map_name"] == "Tabula"
        assert history[1]["suspicion_score"] == 125
        assert len(history[1]["flags"]) == 2

    def test_player_flags(self, populated):
        flags = populated.get_player_flags(1)
        assert len(flags) == 3
        assert flags[0]["game_id"] == "g2"
        assert flags[0]["category"] == "timing"

        high_only = populated.get_player_flags(1, severity=Severity.HIGH)
        assert [f["kind"] for f in high_only] == ["low_variance"]

    def test_recent_games(self, populated):
        games = populated.get_recent_games(limit=10)
        assert {g["game_id"] for g in games} == {"g1", "g2"}
        assert populated.get_recent_games(limit=1)[0]["game_id"] in {"g1", "g2"}
