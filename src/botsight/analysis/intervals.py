"""
Interval statistics: timing distribution of one player's actions.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import numpy as np

from botsight.analysis.models import ActivityStats, IntervalStats, PlayerActionLog
from botsight.core.constants import THRESHOLDS

logger = logging.getLogger(__name__)


def action_intervals(
    timestamps_ms: Sequence[float],
    max_interval_ms: float = THRESHOLDS.max_valid_interval_ms,
) -> np.ndarray:
    """Consecutive deltas in (0, max_interval_ms]; longer gaps are pauses."""
    if len(timestamps_ms) < 2:
        return np.empty(0, dtype=float)

    deltas = np.diff(np.asarray(timestamps_ms, dtype=float))
    return deltas[(deltas > 0) & (deltas <= max_interval_ms)]


def round_to_bin(intervals: np.ndarray, bin_ms: int = THRESHOLDS.histogram_bin_ms) -> np.ndarray:
    """Round to the nearest bin, halves rounding up (25 -> 30, 15 -> 20)."""
    # Epsilon absorbs float noise from seconds -> ms conversion (24.999999 -> 30)
    return (np.floor(intervals / bin_ms + 0.5 + 1e-6) * bin_ms).astype(int)


def interval_histogram(intervals: np.ndarray) -> dict[int, int]:
    """Rounded interval -> count, keys in ascending order."""
    values, counts = np.unique(round_to_bin(intervals), return_counts=True)
    return {int(v): int(c) for v, c in zip(values, counts)}


def dominant_interval(histogram: dict[int, int]) -> tuple[int, int]:
    """Most frequent rounded interval and its count; ties go to the smallest interval."""
    best_ms, best_count = 0, 0
    for interval_ms in sorted(histogram):
        count = histogram[interval_ms]
        if count > best_count:
            best_ms, best_count = interval_ms, count
    return best_ms, best_count


def compute_interval_stats(log: PlayerActionLog) -> IntervalStats | None:
    """
    Summarise a player's inter-action timing.

    Returns None when there is not enough signal: at most
    THRESHOLDS.min_intervals valid intervals, or a non-positive mean.
    """
    intervals = action_intervals(log.timestamps)
    n = len(intervals)
    if n <= THRESHOLDS.min_intervals:
        logger.debug(f"Player {log.player_id}: only {n} valid intervals, no stats")
        return None

    avg = float(intervals.mean())
    if not math.isfinite(avg) or avg <= 0:
        logger.debug(f"Player {log.player_id}: degenerate mean interval {avg}, no stats")
        return None

    # Population standard deviation
    stddev = float(intervals.std())
    histogram = interval_histogram(intervals)
    dominant_ms, dominant_count = dominant_interval(histogram)

    return IntervalStats(
        interval_count=n,
        avg_interval_ms=avg,
        stddev_interval_ms=stddev,
        coeff_variation=stddev / avg,
        ultra_fast_pct=float(np.count_nonzero(intervals <= THRESHOLDS.ultra_fast_ms)) / n * 100,
        very_fast_pct=float(np.count_nonzero(intervals <= THRESHOLDS.very_fast_ms)) / n * 100,
        fast_pct=float(np.count_nonzero(intervals <= THRESHOLDS.fast_ms)) / n * 100,
        dominant_interval_ms=dominant_ms,
        dominant_interval_pct=dominant_count / n * 100,
        histogram=histogram,
    )


def compute_activity(log: PlayerActionLog, duration_ms: float) -> ActivityStats:
    """Action volume and actions per minute over the whole game."""
    minutes = duration_ms / 1000 / 60
    total = len(log)
    return ActivityStats(
        total_actions=total,
        total_commands=len(log.commands),
        total_selections=len(log.selections),
        apm=total / minutes if minutes > 0 else 0.0,
    )
