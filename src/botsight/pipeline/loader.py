"""
Loader for decoded replay exports.

The binary replay decoder runs outside BotSight. Its output can be handed
over in memory (a DecodedGame dict) or as a JSON export with the same shape,
optionally gzip-compressed. This module reads such exports.
"""

from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path

from botsight.core.errors import ReplayDecodeError
from botsight.core.schemas import DecodedGame

logger = logging.getLogger(__name__)

REQUIRED_META_KEYS = ("game_id", "map_name", "duration_ms")


def validate_decoded_game(data: object, source: str = "") -> DecodedGame:
    """Check the minimal shape of a decoded game; raise ReplayDecodeError if off."""
    if not isinstance(data, dict):
        raise ReplayDecodeError("Decoded game must be a JSON object", source)

    meta = data.get("meta")
    if not isinstance(meta, dict):
        raise ReplayDecodeError("Decoded game has no 'meta' object", source)
    missing = [key for key in REQUIRED_META_KEYS if key not in meta]
    if missing:
        raise ReplayDecodeError(f"Game metadata missing: {', '.join(missing)}", source)

    if not isinstance(data.get("players"), list):
        raise ReplayDecodeError("Decoded game has no 'players' list", source)
    if not isinstance(data.get("events"), list):
        raise ReplayDecodeError("Decoded game has no 'events' list", source)

    return data  # type: ignore[return-value]


def load_decoded_game(path: Path | str) -> DecodedGame:
    """Read a decoded-game JSON export (.json or .json.gz)."""
    path = Path(path)
    opener = gzip.open if path.suffix == ".gz" else open

    try:
        with opener(path, "rt", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ReplayDecodeError(f"Failed to read {path.name}: {e}", str(path)) from e

    game = validate_decoded_game(data, str(path))
    game.setdefault("filename", path.name)
    logger.debug(f"Loaded {len(game['events'])} events from {path.name}")
    return game
