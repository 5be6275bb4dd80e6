"""
BotSight Baseline Store.

Durable record of every analysed game, every analysed player-game and every
flag raised, plus a per-player rollup. The population baseline used by the
comparative detector is an aggregate query over the player-game rows.

Uses SQLite with SQLAlchemy ORM. All queries bind their parameters.
"""

import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    case,
    create_engine,
    event,
    func,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from botsight.analysis.models import BaselineStats, GameAnalysisResult, PlayerGameResult
from botsight.core.constants import Severity
from botsight.core.errors import StoreWriteError


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


logger = logging.getLogger(__name__)

Base = declarative_base()


# =============================================================================
# Database Models
# =============================================================================


class Player(Base):
    """A player account with a rollup across all analysed games."""

    __tablename__ = "players"

    user_id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), nullable=False)
    first_seen = Column(DateTime, default=_utc_now)
    last_seen = Column(DateTime, default=_utc_now)

    # Rollup, recomputed from game_players / flags after each game
    total_games = Column(Integer, default=0)
    total_flags = Column(Integer, default=0)
    avg_suspicion_score = Column(Float, default=0.0)

    notes = Column(Text)

    game_players = relationship("GamePlayer", back_populates="player")

    __table_args__ = (Index("idx_players_score", "avg_suspicion_score"),)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for reports."""
        return {
            "user_id": self.user_id,
            "name": self.name,
            "first_seen": self.first_seen.isoformat() if self.first_seen else None,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "total_games": self.total_games,
            "total_flags": self.total_flags,
            "avg_suspicion_score": round(self.avg_suspicion_score or 0.0, 1),
        }


class Game(Base):
    """An analysed replay."""

    __tablename__ = "games"

    game_id = Column(String(64), primary_key=True)
    filename = Column(String(500))
    map_name = Column(String(100), index=True)
    duration_ms = Column(Integer, default=0)
    start_time = Column(String(40), index=True)
    analyzed_at = Column(DateTime, default=_utc_now)
    engine_version = Column(String(50))

    game_players = relationship("GamePlayer", back_populates="game", cascade="all, delete-orphan")
    flags = relationship("FlagRecord", back_populates="game", cascade="all, delete-orphan")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for reports."""
        return {
            "game_id": self.game_id,
            "filename": self.filename,
            "map_name": self.map_name,
            "duration_ms": self.duration_ms,
            "start_time": self.start_time,
            "analyzed_at": self.analyzed_at.isoformat() if self.analyzed_at else None,
            "engine_version": self.engine_version,
        }


class GamePlayer(Base):
    """One player's statistics, flags and score in one game."""

    __tablename__ = "game_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(64), ForeignKey("games.game_id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("players.user_id"), nullable=False, index=True)
    player_name = Column(String(100))
    skill = Column(String(50))
    rank = Column(Integer)
    team_id = Column(Integer)
    ally_team_id = Column(Integer)

    # Activity
    total_actions = Column(Integer, default=0)
    total_commands = Column(Integer, default=0)
    total_selections = Column(Integer, default=0)
    apm = Column(Float, default=0.0)

    # Interval statistics
    interval_count = Column(Integer, default=0)
    avg_interval_ms = Column(Float, default=0.0)
    stddev_interval_ms = Column(Float, default=0.0)
    coeff_variation = Column(Float, default=0.0)
    ultra_fast_pct = Column(Float, default=0.0)
    very_fast_pct = Column(Float, default=0.0)
    fast_pct = Column(Float, default=0.0)
    top_interval_ms = Column(Integer, default=0)
    top_interval_pct = Column(Float, default=0.0)

    suspicion_score = Column(Integer, default=0, index=True)
    flags_json = Column(Text)

    game = relationship("Game", back_populates="game_players")
    player = relationship("Player", back_populates="game_players")

    __table_args__ = (UniqueConstraint("game_id", "user_id", name="uq_game_players_game_user"),)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for reports."""
        return {
            "game_id": self.game_id,
            "user_id": self.user_id,
            "player_name": self.player_name,
            "skill": self.skill,
            "rank": self.rank,
            "total_actions": self.total_actions,
            "apm": round(self.apm or 0.0, 1),
            "avg_interval_ms": self.avg_interval_ms,
            "coeff_variation": self.coeff_variation,
            "ultra_fast_pct": self.ultra_fast_pct,
            "very_fast_pct": self.very_fast_pct,
            "fast_pct": self.fast_pct,
            "top_interval_ms": self.top_interval_ms,
            "top_interval_pct": self.top_interval_pct,
            "suspicion_score": self.suspicion_score,
            "flags": json.loads(self.flags_json) if self.flags_json else [],
        }


class FlagRecord(Base):
    """A single flag, stored individually for history queries."""

    __tablename__ = "flags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(64), ForeignKey("games.game_id"), nullable=False)
    user_id = Column(Integer, ForeignKey("players.user_id"), nullable=False)
    severity = Column(String(10), nullable=False)
    category = Column(String(20), nullable=False)
    kind = Column(String(40))
    message = Column(Text)
    value = Column(Float, default=0.0)

    game = relationship("Game", back_populates="flags")

    __table_args__ = (
        Index("idx_flags_user", "user_id"),
        Index("idx_flags_severity", "severity"),
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for reports."""
        return {
            "game_id": self.game_id,
            "user_id": self.user_id,
            "severity": self.severity,
            "category": self.category,
            "kind": self.kind,
            "message": self.message,
            "value": self.value,
        }


# Numeric game_players columns a percentile can be asked for
PERCENTILE_METRICS = {
    "apm": GamePlayer.apm,
    "avg_interval_ms": GamePlayer.avg_interval_ms,
    "coeff_variation": GamePlayer.coeff_variation,
    "ultra_fast_pct": GamePlayer.ultra_fast_pct,
    "very_fast_pct": GamePlayer.very_fast_pct,
    "fast_pct": GamePlayer.fast_pct,
    "top_interval_pct": GamePlayer.top_interval_pct,
    "suspicion_score": GamePlayer.suspicion_score,
}


# =============================================================================
# Store
# =============================================================================


class BaselineStore:
    """
    Manages the database connection and all reads/writes.

    Writes for one game happen in a single transaction: the game row, its
    player rows and its flags are committed together or not at all. Callers
    running several analyses at once should route writes through
    botsight.infra.writer.BaselineWriter.
    """

    def __init__(self, db_path: Path | str | None = None, echo: bool = False):
        """Initialize database connection."""
        if db_path is None:
            from botsight.core.config import get_config

            db_path = get_config().store.db_path

        if str(db_path) == ":memory:":
            self.db_path = None
            # One shared connection: sessions must not overlap or a closing
            # reader rolls back another thread's open write
            self.engine = create_engine(
                "sqlite://",
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
            self._lock = threading.Lock()
        else:
            self.db_path = Path(db_path).expanduser()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=echo,
                connect_args={"check_same_thread": False},
            )
            self._lock = nullcontext()

        event.listen(self.engine, "connect", _enable_foreign_keys)

        # Create session factory
        self.SessionLocal = sessionmaker(bind=self.engine)

        # Create tables if they don't exist
        Base.metadata.create_all(self.engine)

        logger.info(f"Baseline store initialized at: {self.db_path or ':memory:'}")

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """A session that is closed on exit; serialised for in-memory stores."""
        with self._lock:
            session = self.SessionLocal()
            try:
                yield session
            finally:
                session.close()

    def close(self) -> None:
        self.engine.dispose()

    # =========================================================================
    # Game Operations
    # =========================================================================

    def game_exists(self, game_id: str) -> bool:
        """Whether a game has already been analysed and stored."""
        with self.session_scope() as session:
            return session.get(Game, game_id) is not None

    def record_game(self, result: GameAnalysisResult, replace: bool = False) -> bool:
        """
        Persist a game, its player results and their flags in one transaction.

        Args:
            result: Completed (not skipped) game analysis
            replace: Overwrite an existing record of the same game

        Returns:
            True if written, False if the game was already stored and
            `replace` was not set

        Raises:
            StoreWriteError: if any part of the write fails; nothing for the
                game is left behind
        """
        if result.skipped:
            raise ValueError(f"Cannot record skipped game {result.game_id}")

        with self.session_scope() as session:
            try:
                touched_users = {p.user_id for p in result.players}
                existing = session.get(Game, result.game_id)
                if existing is not None:
                    if not replace:
                        logger.info(f"Game already stored: {result.game_id}")
                        return False
                    # Players dropped from the new record still need their rollup refreshed
                    touched_users |= {gp.user_id for gp in existing.game_players}
                    # Cascades remove the old player rows and flags
                    session.delete(existing)
                    session.flush()

                session.add(
                    Game(
                        game_id=result.game_id,
                        filename=result.filename,
                        map_name=result.map_name,
                        duration_ms=result.duration_ms,
                        start_time=result.start_time,
                        engine_version=result.engine_version,
                    )
                )

                for player_result in result.players:
                    self._upsert_player(session, player_result)
                session.flush()

                for player_result in result.players:
                    session.add(_game_player_row(result.game_id, player_result))
                    for flag in player_result.flags:
                        session.add(
                            FlagRecord(
                                game_id=result.game_id,
                                user_id=player_result.user_id,
                                severity=flag.severity.value,
                                category=flag.category.value,
                                kind=flag.kind.value,
                                message=flag.message,
                                value=flag.value,
                            )
                        )
                session.flush()

                for user_id in touched_users:
                    self._update_player_rollup(session, user_id)

                session.commit()
                logger.info(f"Saved game {result.game_id} with {len(result.players)} players")
                return True

            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Failed to save game {result.game_id}: {e}")
                raise StoreWriteError(
                    f"Failed to save game {result.game_id}: {e}", result.game_id
                ) from e
            except Exception:
                session.rollback()
                raise

    def _upsert_player(self, session: Session, player_result: PlayerGameResult) -> None:
        """Create the player row or refresh its name and last-seen time."""
        player = session.get(Player, player_result.user_id)
        now = _utc_now()
        if player is None:
            session.add(
                Player(
                    user_id=player_result.user_id,
                    name=player_result.name,
                    first_seen=now,
                    last_seen=now,
                )
            )
        else:
            player.name = player_result.name  # Use latest name
            player.last_seen = now

    def _update_player_rollup(self, session: Session, user_id: int) -> None:
        """Recompute total games, total flags and average score from stored rows."""
        games, avg_score = (
            session.query(func.count(GamePlayer.id), func.avg(GamePlayer.suspicion_score))
            .filter(GamePlayer.user_id == user_id)
            .one()
        )
        flag_count = (
            session.query(func.count(FlagRecord.id)).filter(FlagRecord.user_id == user_id).scalar()
        )

        player = session.get(Player, user_id)
        player.total_games = games or 0
        player.total_flags = flag_count or 0
        player.avg_suspicion_score = float(avg_score or 0.0)

    # =========================================================================
    # Baseline
    # =========================================================================

    def get_baseline_stats(self, exclude_user_id: int | None = None) -> BaselineStats:
        """
        Population averages over all stored player-game rows.

        Args:
            exclude_user_id: Leave one player's own rows out of the population
        """
        with self.session_scope() as session:
            query = session.query(
                func.avg(GamePlayer.apm),
                func.avg(GamePlayer.ultra_fast_pct),
                func.avg(GamePlayer.very_fast_pct),
                func.avg(GamePlayer.fast_pct),
                func.avg(GamePlayer.coeff_variation),
                func.avg(GamePlayer.top_interval_pct),
                func.count(GamePlayer.id),
            )
            if exclude_user_id is not None:
                query = query.filter(GamePlayer.user_id != exclude_user_id)

            apm, ultra, very, fast, cv, top, count = query.one()
            return BaselineStats(
                avg_apm=float(apm or 0.0),
                avg_ultra_fast_pct=float(ultra or 0.0),
                avg_very_fast_pct=float(very or 0.0),
                avg_fast_pct=float(fast or 0.0),
                avg_cv=float(cv or 0.0),
                avg_top_interval_pct=float(top or 0.0),
                sample_size=int(count or 0),
            )

    def get_metric_percentile(self, metric: str, value: float) -> float:
        """Share (0-100) of stored player-games with `metric` at or below `value`."""
        column = PERCENTILE_METRICS.get(metric)
        if column is None:
            raise ValueError(f"Unknown metric: {metric}")

        with self.session_scope() as session:
            total, below = (
                session.query(
                    func.count(GamePlayer.id),
                    func.sum(case((column <= value, 1), else_=0)),
                )
                .filter(column.isnot(None))
                .one()
            )
            if not total:
                return 50.0
            return (below or 0) / total * 100

    # =========================================================================
    # History Queries
    # =========================================================================

    def get_suspicious_players(self, limit: int = 20) -> list[dict]:
        """Players ordered by average suspicion score, with serious flag counts."""
        with self.session_scope() as session:
            is_critical = case((FlagRecord.severity == Severity.CRITICAL.value, 1), else_=0)
            is_high = case((FlagRecord.severity == Severity.HIGH.value, 1), else_=0)
            flag_counts = (
                session.query(
                    FlagRecord.user_id.label("user_id"),
                    func.sum(is_critical).label("critical_flags"),
                    func.sum(is_high).label("high_flags"),
                )
                .group_by(FlagRecord.user_id)
                .subquery()
            )
            rows = (
                session.query(Player, flag_counts.c.critical_flags, flag_counts.c.high_flags)
                .outerjoin(flag_counts, Player.user_id == flag_counts.c.user_id)
                .order_by(Player.avg_suspicion_score.desc())
                .limit(limit)
                .all()
            )
            return [
                {**player.to_dict(), "critical_flags": critical or 0, "high_flags": high or 0}
                for player, critical, high in rows
            ]

    def find_player(self, identifier: str | int) -> dict | None:
        """Look a player up by user id or (case-insensitive) name."""
        with self.session_scope() as session:
            player = None
            if isinstance(identifier, int) or str(identifier).isdigit():
                player = session.get(Player, int(identifier))
            if player is None:
                player = (
                    session.query(Player)
                    .filter(func.lower(Player.name) == str(identifier).lower())
                    .first()
                )
            return player.to_dict() if player else None

    def get_player_history(self, user_id: int, limit: int = 50) -> list[dict]:
        """A player's per-game rows, most recent game first."""
        with self.session_scope() as session:
            rows = (
                session.query(GamePlayer, Game.map_name, Game.start_time)
                .join(Game, GamePlayer.game_id == Game.game_id)
                .filter(GamePlayer.user_id == user_id)
                .order_by(Game.start_time.desc())
                .limit(limit)
                .all()
            )
            return [
                {**gp.to_dict(), "map_name": map_name, "start_time": start_time}
                for gp, map_name, start_time in rows
            ]

    def get_player_flags(
        self, user_id: int, limit: int = 100, severity: Severity | None = None
    ) -> list[dict]:
        """A player's flags, most recent game first."""
        with self.session_scope() as session:
            query = (
                session.query(FlagRecord, Game.map_name, Game.start_time)
                .join(Game, FlagRecord.game_id == Game.game_id)
                .filter(FlagRecord.user_id == user_id)
            )
            if severity is not None:
                query = query.filter(FlagRecord.severity == Severity(severity).value)
            rows = query.order_by(Game.start_time.desc(), FlagRecord.id).limit(limit).all()
            return [
                {**flag.to_dict(), "map_name": map_name, "start_time": start_time}
                for flag, map_name, start_time in rows
            ]

    def get_recent_games(self, limit: int = 20) -> list[dict]:
        """Most recently analysed games."""
        with self.session_scope() as session:
            games = session.query(Game).order_by(Game.analyzed_at.desc()).limit(limit).all()
            return [g.to_dict() for g in games]

    def get_global_stats(self) -> dict:
        """Row counts across the store."""
        with self.session_scope() as session:
            return {
                "total_games": session.query(func.count(Game.game_id)).scalar() or 0,
                "total_players": session.query(func.count(Player.user_id)).scalar() or 0,
                "total_player_games": session.query(func.count(GamePlayer.id)).scalar() or 0,
                "total_flags": session.query(func.count(FlagRecord.id)).scalar() or 0,
            }


# =============================================================================
# Utility Functions
# =============================================================================


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite leaves foreign key enforcement off unless asked per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _game_player_row(game_id: str, result: PlayerGameResult) -> GamePlayer:
    stats = result.stats
    activity = result.activity
    return GamePlayer(
        game_id=game_id,
        user_id=result.user_id,
        player_name=result.name,
        skill=result.skill,
        rank=result.rank,
        team_id=result.team_id,
        ally_team_id=result.ally_team_id,
        total_actions=activity.total_actions,
        total_commands=activity.total_commands,
        total_selections=activity.total_selections,
        apm=activity.apm,
        interval_count=stats.interval_count,
        avg_interval_ms=stats.avg_interval_ms,
        stddev_interval_ms=stats.stddev_interval_ms,
        coeff_variation=stats.coeff_variation,
        ultra_fast_pct=stats.ultra_fast_pct,
        very_fast_pct=stats.very_fast_pct,
        fast_pct=stats.fast_pct,
        top_interval_ms=stats.dominant_interval_ms,
        top_interval_pct=stats.dominant_interval_pct,
        suspicion_score=result.suspicion_score,
        flags_json=json.dumps([f.to_dict() for f in result.flags]),
    )


# Global store instance (lazy initialization)
_store: BaselineStore | None = None


def get_store() -> BaselineStore:
    """Get the global baseline store instance."""
    global _store
    if _store is None:
        from botsight.core.config import get_config

        config = get_config()
        _store = BaselineStore(config.store.db_path, echo=config.store.echo)
    return _store
