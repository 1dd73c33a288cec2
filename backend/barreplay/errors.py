"""Error types raised by the backtesting core."""


class BarReplayError(Exception):
    """Base class for all errors raised by barreplay."""


class TradeError(BarReplayError, ValueError):
    """A trade intent was rejected before any state was mutated."""


class InvalidQuantityError(TradeError):
    pass


class InvalidDirectionError(TradeError):
    pass


class NoActiveCandleError(TradeError):
    """Raised when a trade is attempted while no candle is under the cursor."""

    def __init__(self, message: str = "No current candle available") -> None:
        super().__init__(message)


class SessionNotFoundError(BarReplayError, LookupError):
    pass


class CandleSourceError(BarReplayError):
    """The external candle source failed or returned an unusable payload."""
