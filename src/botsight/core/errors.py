"""Exceptions raised across module boundaries."""


class BotSightError(RuntimeError):
    """Base class for BotSight failures surfaced to callers."""


class ReplayDecodeError(BotSightError):
    """The upstream decoder could not turn a replay into events."""

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = str(source or "")


class StoreWriteError(BotSightError):
    """A game's results could not be committed; nothing was written for it."""

    def __init__(self, message: str, game_id: str = ""):
        super().__init__(message)
        self.game_id = str(game_id or "")
