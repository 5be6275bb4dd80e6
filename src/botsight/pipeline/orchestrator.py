"""
Replay Analysis Orchestrator - Per-game pipeline.

decode -> skip check -> baseline snapshot -> ingest -> interval stats
-> detectors -> score -> persist
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from botsight.analysis.detectors import run_detectors
from botsight.analysis.ingest import ingest_events
from botsight.analysis.intervals import compute_activity, compute_interval_stats
from botsight.analysis.models import (
    BaselineStats,
    GameAnalysisResult,
    IntervalStats,
    PlayerActionLog,
    PlayerGameResult,
)
from botsight.analysis.scoring import suspicion_score
from botsight.core.config import AnalysisConfig
from botsight.core.errors import ReplayDecodeError
from botsight.core.schemas import DecodedGame, RosterEntry
from botsight.infra.database import BaselineStore
from botsight.infra.writer import BaselineWriter
from botsight.pipeline.loader import load_decoded_game, validate_decoded_game

logger = logging.getLogger(__name__)

Decoder = Callable[[Path], DecodedGame]

TOP_COMMANDS = 5


class ReplayAnalyzer:
    """
    Runs the full analysis pipeline for one game at a time.

    Reads (already-analysed check, baseline snapshot) go straight to the
    store. Writes go through a BaselineWriter when one is given, so several
    ReplayAnalyzers can share a store from different threads.

    Example:
        >>> store = BaselineStore("analysis.db")
        >>> analyzer = ReplayAnalyzer(store)
        >>> result = analyzer.analyze_file(Path("replays/game.json"))
        >>> for player in result.players:
        ...     print(player.name, player.suspicion_score)
    """

    def __init__(
        self,
        store: BaselineStore,
        *,
        writer: BaselineWriter | None = None,
        decoder: Decoder | None = None,
        config: AnalysisConfig | None = None,
    ):
        self.store = store
        self.writer = writer
        self.decoder = decoder or load_decoded_game
        self.config = config or AnalysisConfig()

    # =========================================================================
    # Entry points
    # =========================================================================

    def analyze_file(self, replay_path: Path, *, force: bool = False) -> GameAnalysisResult:
        """
        Decode and analyse one replay file.

        Raises:
            ReplayDecodeError: the decoder failed; the store is untouched
            StoreWriteError: the results could not be committed
        """
        try:
            decoded = self.decoder(replay_path)
        except ReplayDecodeError:
            raise
        except Exception as e:
            raise ReplayDecodeError(f"Failed to decode {replay_path}: {e}", str(replay_path)) from e

        decoded = validate_decoded_game(decoded, str(replay_path))
        if not decoded.get("filename"):
            decoded["filename"] = Path(replay_path).name
        return self.analyze_game(decoded, force=force)

    def analyze_game(self, decoded: DecodedGame, *, force: bool = False) -> GameAnalysisResult:
        """Analyse an already-decoded game and persist the result."""
        meta = decoded["meta"]
        game_id = str(meta["game_id"])
        filename = decoded.get("filename", "")

        if not force and self.store.game_exists(game_id):
            logger.info(f"Skipped (already analyzed): {game_id}")
            return GameAnalysisResult.skip(game_id, filename)

        result = self.score_game(decoded)

        written = self._persist(result, replace=force)
        if not written:
            # Another analysis of the same game committed first
            logger.info(f"Skipped (stored concurrently): {game_id}")
            return GameAnalysisResult.skip(game_id, filename)

        flagged = sum(1 for p in result.players if p.suspicion_score > 0)
        logger.info(
            f"Analyzed {game_id} on {result.map_name}: "
            f"{len(result.players)} players, {flagged} flagged"
        )
        return result

    # =========================================================================
    # Pipeline stages
    # =========================================================================

    def score_game(self, decoded: DecodedGame) -> GameAnalysisResult:
        """Run ingest, statistics, detectors and scoring without touching the store."""
        meta = decoded["meta"]
        duration_ms = int(meta.get("duration_ms") or 0)
        roster = {entry["player_id"]: entry for entry in decoded["players"]}

        logs = ingest_events(decoded["events"], min_actions=self.config.min_actions)
        unknown = [pid for pid in logs if pid not in roster]
        if unknown:
            logger.warning(f"Dropping actions of players missing from roster: {unknown}")

        qualifying = {pid: log for pid, log in logs.items() if pid in roster}
        baselines = self._baseline_snapshot([roster[pid]["user_id"] for pid in qualifying])

        players = [
            self.score_player(log, roster[pid], duration_ms, baselines.get(roster[pid]["user_id"]))
            for pid, log in qualifying.items()
        ]

        return GameAnalysisResult(
            game_id=str(meta["game_id"]),
            filename=decoded.get("filename", ""),
            map_name=meta.get("map_name", ""),
            duration_ms=duration_ms,
            start_time=meta.get("start_time"),
            engine_version=meta.get("engine_version"),
            players=players,
        )

    def score_player(
        self,
        log: PlayerActionLog,
        info: RosterEntry,
        duration_ms: int,
        baseline: BaselineStats | None,
    ) -> PlayerGameResult:
        """Statistics, flags and score for one qualifying player."""
        stats = compute_interval_stats(log)
        flags = run_detectors(stats, log, baseline)
        user_id = info["user_id"]

        result = PlayerGameResult(
            player_id=log.player_id,
            user_id=user_id,
            name=info.get("name", ""),
            stats=stats or IntervalStats(),
            activity=compute_activity(log, duration_ms),
            flags=flags,
            suspicion_score=suspicion_score(flags),
            skill=info.get("skill"),
            rank=info.get("rank"),
            team_id=info.get("team_id"),
            ally_team_id=info.get("ally_team_id"),
            top_commands=log.command_counts.most_common(TOP_COMMANDS),
            verified_human=user_id in self.config.verified_humans,
        )
        logger.debug(
            f"{result.name} ({user_id}): score {result.suspicion_score}, {len(flags)} flags"
        )
        return result

    def _baseline_snapshot(self, user_ids: list[int]) -> dict[int, BaselineStats]:
        """Baseline per player, read once before any detector runs."""
        if not self.config.exclude_subject_from_baseline:
            shared = self.store.get_baseline_stats()
            return {uid: shared for uid in user_ids}
        return {uid: self.store.get_baseline_stats(exclude_user_id=uid) for uid in user_ids}

    def _persist(self, result: GameAnalysisResult, replace: bool) -> bool:
        if self.writer is not None:
            return self.writer.write(result, replace=replace)
        return self.store.record_game(result, replace=replace)


def analyze_replay(
    replay_path: Path | str, store: BaselineStore | None = None, force: bool = False
) -> GameAnalysisResult:
    """
    Convenience function to analyse one decoded replay export.

    Args:
        replay_path: Path to a .json or .json.gz decoded game
        store: Baseline store (default: the global store from config)
        force: Re-analyse even if the game is already stored

    Returns:
        GameAnalysisResult
    """
    from botsight.core.config import get_config
    from botsight.infra.database import get_store

    analyzer = ReplayAnalyzer(store or get_store(), config=get_config().analysis)
    return analyzer.analyze_file(Path(replay_path), force=force)
