"""
BotSight Analysis - Turning action streams into flags and scores.

This module contains:
- models: Dataclasses shared across the pipeline
- ingest: Per-player grouping of decoded events
- intervals: Inter-action timing statistics
- detectors: The rule-based detector suite
- scoring: Severity-weighted suspicion score
"""

from botsight.analysis.detectors import run_detectors
from botsight.analysis.ingest import ingest_events
from botsight.analysis.intervals import compute_activity, compute_interval_stats
from botsight.analysis.models import (
    ActionEvent,
    ActivityStats,
    BaselineStats,
    Flag,
    GameAnalysisResult,
    IntervalStats,
    PlayerActionLog,
    PlayerGameResult,
)
from botsight.analysis.scoring import score_band, suspicion_score

__all__ = [
    "ActionEvent",
    "ActivityStats",
    "BaselineStats",
    "Flag",
    "GameAnalysisResult",
    "IntervalStats",
    "PlayerActionLog",
    "PlayerGameResult",
    "compute_activity",
    "compute_interval_stats",
    "ingest_events",
    "run_detectors",
    "score_band",
    "suspicion_score",
]
