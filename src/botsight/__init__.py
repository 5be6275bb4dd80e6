"""
BotSight - Replay-based bot detection

Scores every player in a decoded game replay for automation: inter-action
timing statistics feed a rule-based detector suite, flags are weighted into
a suspicion score, and every game is recorded in a local baseline store that
later games are compared against.

Usage:
    from botsight import BaselineStore, ReplayAnalyzer

    store = BaselineStore("analysis.db")
    result = ReplayAnalyzer(store).analyze_file(Path("game.json"))

    for player in result.players:
        print(f"{player.name}: {player.suspicion_score}")
"""

__version__ = "0.1.0"
__author__ = "BotSight Contributors"


def __getattr__(name):
    """Lazy import for heavy dependencies."""
    if name == "ReplayAnalyzer":
        from botsight.pipeline.orchestrator import ReplayAnalyzer
        return ReplayAnalyzer
    elif name == "analyze_replay":
        from botsight.pipeline.orchestrator import analyze_replay
        return analyze_replay
    elif name == "BaselineStore":
        from botsight.infra.database import BaselineStore
        return BaselineStore
    elif name == "BaselineWriter":
        from botsight.infra.writer import BaselineWriter
        return BaselineWriter
    elif name == "BatchAnalyzer":
        from botsight.infra.parallel import BatchAnalyzer
        return BatchAnalyzer
    elif name == "run_detectors":
        from botsight.analysis.detectors import run_detectors
        return run_detectors
    elif name == "suspicion_score":
        from botsight.analysis.scoring import suspicion_score
        return suspicion_score
    raise AttributeError(f"module 'botsight' has no attribute '{name}'")


__all__ = [
    # Version
    "__version__",
    # Pipeline
    "ReplayAnalyzer",
    "analyze_replay",
    # Storage
    "BaselineStore",
    "BaselineWriter",
    "BatchAnalyzer",
    # Analysis
    "run_detectors",
    "suspicion_score",
]
