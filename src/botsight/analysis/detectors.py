"""
Detector suite.

Six independent rule sets that turn a player's timing statistics and raw
action log into flags:

- timing:       share of ultra-fast / very-fast / fast intervals, low variance
- periodicity:  concentration on a single interval, suspiciously round intervals
- burst:        peak action rate inside a sliding 500ms window
- consistency:  mean interval barely moving across five game segments
- selection:    rapid back-to-back selections of large unit groups
- comparative:  metrics far above the population baseline

Every detector is a pure function returning a (possibly empty) list of flags.
Thresholds come from botsight.core.constants.THRESHOLDS.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from botsight.analysis.intervals import action_intervals
from botsight.analysis.models import (
    ActionEvent,
    BaselineStats,
    Flag,
    IntervalStats,
    PlayerActionLog,
)
from botsight.core.constants import THRESHOLDS, FlagKind, Severity

logger = logging.getLogger(__name__)


# =============================================================================
# Timing
# =============================================================================


def detect_timing(stats: IntervalStats) -> list[Flag]:
    """Flag an excess of fast intervals and machine-like low variance."""
    flags: list[Flag] = []

    buckets = (
        (
            FlagKind.ULTRA_FAST,
            THRESHOLDS.ultra_fast,
            stats.ultra_fast_pct,
            "actions at game tick limit",
        ),
        (FlagKind.VERY_FAST, THRESHOLDS.very_fast, stats.very_fast_pct, "very fast actions"),
        (FlagKind.FAST, THRESHOLDS.fast, stats.fast_pct, "fast actions"),
    )
    limits_ms = (THRESHOLDS.ultra_fast_ms, THRESHOLDS.very_fast_ms, THRESHOLDS.fast_ms)
    for (kind, band, pct, label), limit_ms in zip(buckets, limits_ms):
        severity = band.classify(pct)
        if severity is not None:
            flags.append(Flag(kind, severity, pct, f"{pct:.1f}% {label} (<={limit_ms:.0f}ms)"))

    if stats.interval_count > THRESHOLDS.cv_min_intervals:
        cv = stats.coeff_variation
        severity = THRESHOLDS.coeff_variation.classify(cv)
        if severity is Severity.HIGH:
            flags.append(
                Flag(
                    FlagKind.LOW_VARIANCE,
                    severity,
                    cv,
                    f"Suspiciously consistent timing (CV: {cv:.3f})",
                )
            )
        elif severity is not None:
            flags.append(
                Flag(FlagKind.LOW_VARIANCE, severity, cv, f"Low timing variance (CV: {cv:.3f})")
            )

    return flags


# =============================================================================
# Periodicity
# =============================================================================


def detect_periodicity(stats: IntervalStats) -> list[Flag]:
    """Flag a dominant interval and over-represented round intervals."""
    flags: list[Flag] = []

    pct = stats.dominant_interval_pct
    severity = THRESHOLDS.dominant_interval.classify(pct)
    if severity is not None:
        flags.append(
            Flag(
                FlagKind.DOMINANT_INTERVAL,
                severity,
                pct,
                f"{pct:.1f}% of actions at {stats.dominant_interval_ms}ms interval",
                interval_ms=stats.dominant_interval_ms,
            )
        )

    for interval_ms in THRESHOLDS.round_intervals_ms:
        share = stats.share_of(interval_ms)
        if share > THRESHOLDS.round_interval_pct:
            flags.append(
                Flag(
                    FlagKind.ROUND_INTERVAL,
                    Severity.LOW,
                    share,
                    f"{share:.1f}% actions at exactly {interval_ms}ms (suspiciously round)",
                    interval_ms=interval_ms,
                )
            )

    return flags


# =============================================================================
# Burst
# =============================================================================


def max_burst_rate(timestamps_ms: Sequence[float]) -> float:
    """
    Peak actions/second over anchored 500ms windows.

    A burst starts at an anchor action and runs until an action lands more
    than the window past the anchor; that action becomes the next anchor.
    Bursts with fewer than the minimum number of actions, or with zero
    duration, are ignored. The window still open when the log ends never
    closes and is not scored.
    """
    window = THRESHOLDS.burst_window_ms
    min_size = THRESHOLDS.burst_min_actions
    max_rate = 0.0

    def close(start: int, end: int) -> float:
        size = end - start
        duration_ms = timestamps_ms[end - 1] - timestamps_ms[start]
        if size >= min_size and duration_ms > 0:
            return size / (duration_ms / 1000)
        return 0.0

    anchor = 0
    for i in range(1, len(timestamps_ms)):
        if timestamps_ms[i] - timestamps_ms[anchor] > window:
            max_rate = max(max_rate, close(anchor, i))
            anchor = i

    return max_rate


def detect_bursts(log: PlayerActionLog) -> list[Flag]:
    if len(log) < THRESHOLDS.min_actions:
        return []

    rate = max_burst_rate(log.timestamps)
    severity = THRESHOLDS.burst_rate.classify(rate)
    if severity is None:
        return []

    label = {
        Severity.CRITICAL: "Extreme",
        Severity.HIGH: "High",
        Severity.MEDIUM: "Elevated",
    }[severity]
    message = f"{label} burst rate: {rate:.1f} actions/sec"
    return [Flag(FlagKind.BURST_RATE, severity, rate, message)]


# =============================================================================
# Segment consistency
# =============================================================================


def segment_consistency(timestamps_ms: Sequence[float]) -> float | None:
    """
    Relative spread of per-segment mean intervals.

    The action list is cut into equal contiguous segments (remainder dropped);
    each non-empty segment contributes the mean of its intervals in
    (0, 5000]ms. Returns (max - min) / mean of the segment means, or None
    when fewer than three segments have intervals.
    """
    segments = THRESHOLDS.consistency_segments
    size = len(timestamps_ms) // segments
    if size == 0:
        return None

    means = []
    for s in range(segments):
        chunk = timestamps_ms[s * size : (s + 1) * size]
        intervals = action_intervals(chunk, THRESHOLDS.consistency_max_interval_ms)
        if len(intervals):
            means.append(float(intervals.mean()))

    if len(means) < THRESHOLDS.consistency_min_segments:
        return None

    overall = float(np.mean(means))
    if overall <= 0:
        return None
    return (max(means) - min(means)) / overall


def detect_segment_consistency(log: PlayerActionLog) -> list[Flag]:
    if len(log) < THRESHOLDS.consistency_min_actions:
        return []

    consistency = segment_consistency(log.timestamps)
    if consistency is None or len(log) <= THRESHOLDS.consistency_flag_min_actions:
        return []

    severity = THRESHOLDS.segment_consistency.classify(consistency)
    if severity is None:
        return []

    prefix = "Suspiciously consistent" if severity is Severity.HIGH else "Low variance"
    return [
        Flag(
            FlagKind.SEGMENT_CONSISTENCY,
            severity,
            consistency,
            f"{prefix} across game segments ({consistency * 100:.1f}% variance)",
        )
    ]


# =============================================================================
# Selection
# =============================================================================


def count_rapid_large_selections(selections: Sequence[ActionEvent]) -> int:
    """Consecutive selection pairs under 100ms apart where both pick more than 10 units."""
    count = 0
    min_units = THRESHOLDS.selection_min_units
    for prev, cur in zip(selections, selections[1:]):
        if (
            cur.timestamp_ms - prev.timestamp_ms < THRESHOLDS.selection_max_gap_ms
            and (cur.selected_unit_count or 0) > min_units
            and (prev.selected_unit_count or 0) > min_units
        ):
            count += 1
    return count


def detect_selection(log: PlayerActionLog) -> list[Flag]:
    selections = log.selections
    if len(selections) < THRESHOLDS.selection_min_events:
        return []

    rapid = count_rapid_large_selections(selections)
    severity = THRESHOLDS.rapid_selections.classify(rapid)
    if severity is None:
        return []
    return [
        Flag(
            FlagKind.RAPID_LARGE_SELECTION,
            severity,
            float(rapid),
            f"{rapid} rapid large selection changes",
        )
    ]


# =============================================================================
# Comparative
# =============================================================================


def _ratio(value: float, average: float) -> float:
    return value / average if average > 0 else value


def detect_against_baseline(stats: IntervalStats, baseline: BaselineStats | None) -> list[Flag]:
    """Flag metrics far above the population average; silent on a small baseline."""
    if baseline is None or not baseline.usable:
        return []

    flags: list[Flag] = []

    ultra = stats.ultra_fast_pct
    if (
        ultra > baseline.avg_ultra_fast_pct * THRESHOLDS.baseline_ultra_fast_multiple
        and ultra > THRESHOLDS.baseline_ultra_fast_floor
    ):
        ratio = _ratio(ultra, baseline.avg_ultra_fast_pct)
        flags.append(
            Flag(
                FlagKind.BASELINE_ULTRA_FAST,
                Severity.MEDIUM,
                ratio,
                f"Ultra-fast rate {ratio:.1f}x above average",
            )
        )

    top = stats.dominant_interval_pct
    if (
        top > baseline.avg_top_interval_pct * THRESHOLDS.baseline_periodicity_multiple
        and top > THRESHOLDS.baseline_periodicity_floor
    ):
        ratio = _ratio(top, baseline.avg_top_interval_pct)
        flags.append(
            Flag(
                FlagKind.BASELINE_PERIODICITY,
                Severity.MEDIUM,
                ratio,
                f"Periodicity {ratio:.1f}x above average",
                interval_ms=stats.dominant_interval_ms,
            )
        )

    return flags


# =============================================================================
# Suite
# =============================================================================


def run_detectors(
    stats: IntervalStats | None,
    log: PlayerActionLog,
    baseline: BaselineStats | None = None,
) -> list[Flag]:
    """
    Run every detector for one player.

    Without interval statistics there is no usable timing signal and no
    detector runs.
    """
    if stats is None:
        return []

    flags = [
        *detect_timing(stats),
        *detect_periodicity(stats),
        *detect_bursts(log),
        *detect_segment_consistency(log),
        *detect_selection(log),
        *detect_against_baseline(stats, baseline),
    ]
    logger.debug(f"Player {log.player_id}: {len(flags)} flags")
    return flags
