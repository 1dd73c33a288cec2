"""Bar replay backtester: candle playback, simulated trading and chart drawings."""

__version__ = "0.1.0"
