"""
Suspicion scoring.

The score is a plain weighted count of a player's flags. It is open-ended
and only meaningful for ranking; it is not a probability.
"""

from collections.abc import Iterable

from botsight.analysis.models import Flag
from botsight.core.constants import SCORE_BANDS, SEVERITY_WEIGHTS


def suspicion_score(flags: Iterable[Flag]) -> int:
    """Sum of severity weights: CRITICAL=100, HIGH=25, MEDIUM=10, LOW=3."""
    return sum(SEVERITY_WEIGHTS[flag.severity] for flag in flags)


def score_band(score: float) -> str:
    """Ranking label for a score: investigate, suspicious, watch, minor or clean."""
    for floor, label in SCORE_BANDS:
        if score >= floor:
            return label
    return "clean"
