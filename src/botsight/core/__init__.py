"""
BotSight Core - Foundation modules for replay analysis.

This module contains the fundamental components:
- constants: Flag taxonomy, severity weights and detection thresholds
- config: Application configuration management
- schemas: Data contracts for the upstream replay decoder
- errors: Exceptions surfaced to callers
"""

from botsight.core.constants import (
    FLAG_CATEGORIES,
    SCORE_BANDS,
    SEVERITY_WEIGHTS,
    THRESHOLDS,
    ActionKind,
    Category,
    DetectionThresholds,
    FlagKind,
    Severity,
)
from botsight.core.errors import BotSightError, ReplayDecodeError, StoreWriteError
from botsight.core.schemas import DecodedEvent, DecodedGame, GameMeta, RosterEntry

__all__ = [
    # Enums
    "ActionKind",
    "Category",
    "FlagKind",
    "Severity",
    # Constants
    "FLAG_CATEGORIES",
    "SCORE_BANDS",
    "SEVERITY_WEIGHTS",
    "THRESHOLDS",
    "DetectionThresholds",
    # Errors
    "BotSightError",
    "ReplayDecodeError",
    "StoreWriteError",
    # Schemas (data contracts)
    "DecodedEvent",
    "DecodedGame",
    "GameMeta",
    "RosterEntry",
]
