"""
BotSight - Constants

Flag taxonomy, severity weights and the detection threshold table.

The thresholds are fixed contract values calibrated for one game's input
rate. Every detector and every test reads them from THRESHOLDS so there is
a single source of truth.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Final


class ActionKind(StrEnum):
    """Kind of player action extracted from the packet stream."""

    COMMAND = "command"
    SELECTION = "selection"


class Severity(StrEnum):
    """Flag severity, ordered from most to least serious."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Category(StrEnum):
    """Detector family a flag belongs to."""

    TIMING = "timing"
    PERIODICITY = "periodicity"
    BURST = "burst"
    CONSISTENCY = "consistency"
    SELECTION = "selection"
    COMPARATIVE = "comparative"


class FlagKind(StrEnum):
    """
    Closed set of flag variants.

    Each kind belongs to exactly one category (see FLAG_CATEGORIES), so a flag's
    category never has to be carried around separately.
    """

    ULTRA_FAST = "ultra_fast"
    VERY_FAST = "very_fast"
    FAST = "fast"
    LOW_VARIANCE = "low_variance"
    DOMINANT_INTERVAL = "dominant_interval"
    ROUND_INTERVAL = "round_interval"
    BURST_RATE = "burst_rate"
    SEGMENT_CONSISTENCY = "segment_consistency"
    RAPID_LARGE_SELECTION = "rapid_large_selection"
    BASELINE_ULTRA_FAST = "baseline_ultra_fast"
    BASELINE_PERIODICITY = "baseline_periodicity"


FLAG_CATEGORIES: Final[dict[FlagKind, Category]] = {
    FlagKind.ULTRA_FAST: Category.TIMING,
    FlagKind.VERY_FAST: Category.TIMING,
    FlagKind.FAST: Category.TIMING,
    # Emitted by the timing detector but reported as a consistency signal
    FlagKind.LOW_VARIANCE: Category.CONSISTENCY,
    FlagKind.DOMINANT_INTERVAL: Category.PERIODICITY,
    FlagKind.ROUND_INTERVAL: Category.PERIODICITY,
    FlagKind.BURST_RATE: Category.BURST,
    FlagKind.SEGMENT_CONSISTENCY: Category.CONSISTENCY,
    FlagKind.RAPID_LARGE_SELECTION: Category.SELECTION,
    FlagKind.BASELINE_ULTRA_FAST: Category.COMPARATIVE,
    FlagKind.BASELINE_PERIODICITY: Category.COMPARATIVE,
}

SEVERITY_WEIGHTS: Final[dict[Severity, int]] = {
    Severity.CRITICAL: 100,
    Severity.HIGH: 25,
    Severity.MEDIUM: 10,
    Severity.LOW: 3,
}

# Score bands used for ranking, highest first
SCORE_BANDS: Final[tuple[tuple[int, str], ...]] = (
    (100, "investigate"),
    (50, "suspicious"),
    (20, "watch"),
    (1, "minor"),
)

# Packet names produced by the upstream replay decoder
COMMAND_EVENT: Final = "COMMAND"
SELECTION_EVENT: Final = "SELECT"


# ============================================================================
# Threshold table
# ============================================================================


@dataclass(frozen=True)
class Band:
    """
    A metric compared against descending limits.

    `limits` pairs a limit with the severity assigned when the metric is
    strictly beyond it. For `above` bands the first limit exceeded wins; for
    `below` bands the first limit undercut wins.
    """

    limits: tuple[tuple[float, Severity], ...]
    direction: str = "above"

    def classify(self, value: float) -> Severity | None:
        for limit, severity in self.limits:
            if self.direction == "above" and value > limit:
                return severity
            if self.direction == "below" and value < limit:
                return severity
        return None


@dataclass(frozen=True)
class DetectionThresholds:
    """Exact detection contract values."""

    # Ingest / interval statistics
    min_actions: int = 20
    max_valid_interval_ms: float = 10_000.0
    min_intervals: int = 10  # stats are produced only when intervals > this
    ultra_fast_ms: float = 33.0
    very_fast_ms: float = 50.0
    fast_ms: float = 100.0
    histogram_bin_ms: int = 10

    # Timing
    ultra_fast: Band = Band(((10.0, Severity.CRITICAL), (3.0, Severity.HIGH)))
    very_fast: Band = Band(((15.0, Severity.HIGH), (5.0, Severity.MEDIUM)))
    fast: Band = Band(((20.0, Severity.HIGH), (10.0, Severity.MEDIUM)))
    coeff_variation: Band = Band(((0.3, Severity.HIGH), (0.5, Severity.LOW)), "below")
    cv_min_intervals: int = 50

    # Periodicity
    dominant_interval: Band = Band(
        ((30.0, Severity.CRITICAL), (20.0, Severity.HIGH), (15.0, Severity.MEDIUM))
    )
    round_intervals_ms: tuple[int, ...] = (100, 200, 250, 500, 1000)
    round_interval_pct: float = 10.0

    # Burst
    burst_window_ms: float = 500.0
    burst_min_actions: int = 5
    burst_rate: Band = Band(
        ((30.0, Severity.CRITICAL), (20.0, Severity.HIGH), (15.0, Severity.MEDIUM))
    )

    # Segment consistency
    consistency_min_actions: int = 100
    consistency_flag_min_actions: int = 200
    consistency_segments: int = 5
    consistency_min_segments: int = 3
    consistency_max_interval_ms: float = 5_000.0
    segment_consistency: Band = Band(((0.15, Severity.HIGH), (0.25, Severity.LOW)), "below")

    # Selection
    selection_min_events: int = 10
    selection_max_gap_ms: float = 100.0
    selection_min_units: int = 10  # both selections must exceed this
    rapid_selections: Band = Band(((10, Severity.HIGH), (5, Severity.MEDIUM)))

    # Comparative
    baseline_min_sample: int = 10  # baseline is used only when sample_size > this
    baseline_ultra_fast_multiple: float = 3.0
    baseline_ultra_fast_floor: float = 1.0
    baseline_periodicity_multiple: float = 2.0
    baseline_periodicity_floor: float = 10.0


THRESHOLDS: Final = DetectionThresholds()
