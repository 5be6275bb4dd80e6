"""
BotSight Pipeline - Replay analysis orchestration.

This module handles the complete per-game pipeline:
- Loading decoded replay exports
- Skip-if-analysed check
- Scoring (ingest, statistics, detectors)
- Persisting results to the baseline store
"""

from botsight.pipeline.loader import load_decoded_game, validate_decoded_game
from botsight.pipeline.orchestrator import ReplayAnalyzer, analyze_replay

__all__ = ["ReplayAnalyzer", "analyze_replay", "load_decoded_game", "validate_decoded_game"]
