"""
Data Models for Replay Analysis

Dataclasses shared by the ingest, statistics, detector, scoring and storage
layers. Everything that leaves a module boundary as a dict goes through a
to_dict() defined here.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any

from botsight.core.constants import (
    FLAG_CATEGORIES,
    THRESHOLDS,
    ActionKind,
    Category,
    FlagKind,
    Severity,
)

# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class ActionEvent:
    """A single timestamped player action."""

    player_id: int
    timestamp_ms: float
    kind: ActionKind
    command_name: str | None = None
    selected_unit_count: int | None = None


@dataclass
class PlayerActionLog:
    """Chronological actions of one player within one game."""

    player_id: int
    actions: list[ActionEvent] = field(default_factory=list)
    command_counts: Counter[str] = field(default_factory=Counter)

    def append(self, action: ActionEvent) -> None:
        self.actions.append(action)
        if action.kind is ActionKind.COMMAND:
            self.command_counts[action.command_name or "UNKNOWN"] += 1

    @property
    def commands(self) -> list[ActionEvent]:
        return [a for a in self.actions if a.kind is ActionKind.COMMAND]

    @property
    def selections(self) -> list[ActionEvent]:
        return [a for a in self.actions if a.kind is ActionKind.SELECTION]

    @property
    def timestamps(self) -> list[float]:
        return [a.timestamp_ms for a in self.actions]

    def __len__(self) -> int:
        return len(self.actions)


# =============================================================================
# Derived statistics
# =============================================================================


@dataclass(frozen=True)
class IntervalStats:
    """Inter-action timing distribution for one player in one game.

    All percentages are on a 0-100 scale. A default-constructed instance is
    the "insufficient signal" placeholder (no qualifying intervals).
    """

    interval_count: int = 0
    avg_interval_ms: float = 0.0
    stddev_interval_ms: float = 0.0
    coeff_variation: float = 0.0
    ultra_fast_pct: float = 0.0  # <= 33ms
    very_fast_pct: float = 0.0  # <= 50ms
    fast_pct: float = 0.0  # <= 100ms
    dominant_interval_ms: int = 0
    dominant_interval_pct: float = 0.0
    # Rounded interval (ms) -> count, kept for the round-interval check
    histogram: dict[int, int] = field(default_factory=dict, compare=False, repr=False)

    @property
    def dominant_interval_count(self) -> int:
        return self.histogram.get(self.dominant_interval_ms, 0)

    def share_of(self, rounded_ms: int) -> float:
        """Percentage of intervals that rounded to `rounded_ms`."""
        if self.interval_count == 0:
            return 0.0
        return self.histogram.get(rounded_ms, 0) / self.interval_count * 100

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("histogram")
        return data


@dataclass(frozen=True)
class ActivityStats:
    """Raw activity volume for one player in one game."""

    total_actions: int = 0
    total_commands: int = 0
    total_selections: int = 0
    apm: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BaselineStats:
    """Population averages over stored player-game rows."""

    avg_apm: float = 0.0
    avg_ultra_fast_pct: float = 0.0
    avg_very_fast_pct: float = 0.0
    avg_fast_pct: float = 0.0
    avg_cv: float = 0.0
    avg_top_interval_pct: float = 0.0
    sample_size: int = 0

    @property
    def usable(self) -> bool:
        """Whether the population is large enough to calibrate against."""
        return self.sample_size > THRESHOLDS.baseline_min_sample

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# Flags and results
# =============================================================================


@dataclass(frozen=True)
class Flag:
    """A single severity-tagged finding."""

    kind: FlagKind
    severity: Severity
    value: float
    message: str
    # Interval the finding refers to, for periodicity flags
    interval_ms: int | None = None

    @property
    def category(self) -> Category:
        return FLAG_CATEGORIES[self.kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "value": self.value,
            "interval_ms": self.interval_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Flag:
        return cls(
            kind=FlagKind(data["kind"]),
            severity=Severity(data["severity"]),
            value=float(data.get("value") or 0.0),
            message=data.get("message", ""),
            interval_ms=data.get("interval_ms"),
        )


@dataclass
class PlayerGameResult:
    """Analysis outcome for one player in one game."""

    player_id: int
    user_id: int
    name: str
    stats: IntervalStats
    activity: ActivityStats
    flags: list[Flag] = field(default_factory=list)
    suspicion_score: int = 0
    skill: str | None = None
    rank: int | None = None
    team_id: int | None = None
    ally_team_id: int | None = None
    top_commands: list[tuple[str, int]] = field(default_factory=list)
    verified_human: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "user_id": self.user_id,
            "name": self.name,
            "skill": self.skill,
            "rank": self.rank,
            "team_id": self.team_id,
            "ally_team_id": self.ally_team_id,
            "stats": {**self.activity.to_dict(), **self.stats.to_dict()},
            "flags": [f.to_dict() for f in self.flags],
            "suspicion_score": self.suspicion_score,
            "top_commands": [list(c) for c in self.top_commands],
            "verified_human": self.verified_human,
        }


@dataclass
class GameAnalysisResult:
    """Analysis outcome for one game, or a skip marker."""

    game_id: str
    filename: str = ""
    map_name: str = ""
    duration_ms: int = 0
    start_time: str | None = None
    engine_version: str | None = None
    players: list[PlayerGameResult] = field(default_factory=list)
    skipped: bool = False

    @classmethod
    def skip(cls, game_id: str, filename: str = "") -> GameAnalysisResult:
        return cls(game_id=game_id, filename=filename, skipped=True)

    def to_dict(self) -> dict[str, Any]:
        if self.skipped:
            return {"game_id": self.game_id, "skipped": True}
        return {
            "game_id": self.game_id,
            "filename": self.filename,
            "map_name": self.map_name,
            "duration_ms": self.duration_ms,
            "start_time": self.start_time,
            "engine_version": self.engine_version,
            "players": [p.to_dict() for p in self.players],
            "skipped": False,
        }
