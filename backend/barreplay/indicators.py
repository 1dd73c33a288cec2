"""Moving averages and Fibonacci price levels over a candle series."""
from typing import Dict, List, Sequence

from .config import FIB_LEVELS
from .trading_models import Candle


def calculate_sma(candles: Sequence[Candle], period: int) -> List[Dict[str, float]]:
    """Simple moving average of closes, one point per full window."""
    if period <= 0:
        raise ValueError("Period must be positive")
    result: List[Dict[str, float]] = []
    window_sum = 0.0
    for i, candle in enumerate(candles):
        window_sum += candle.close
        if i >= period:
            window_sum -= candles[i - period].close
        if i >= period - 1:
            result.append({"time": candle.timestamp, "value": window_sum / period})
    return result


def calculate_ema(candles: Sequence[Candle], period: int) -> List[Dict[str, float]]:
    """Exponential moving average seeded with the SMA of the first window."""
    if period <= 0:
        raise ValueError("Period must be positive")
    if len(candles) < period:
        return []
    multiplier = 2 / (period + 1)
    ema = sum(c.close for c in candles[:period]) / period
    result = [{"time": candles[period - 1].timestamp, "value": ema}]
    for candle in candles[period:]:
        ema = (candle.close - ema) * multiplier + ema
        result.append({"time": candle.timestamp, "value": ema})
    return result


def calculate_fibonacci_levels(high: float, low: float) -> Dict[float, float]:
    """Retracement ratio -> price, measured up from ``low``."""
    diff = high - low
    return {level: low + diff * level for level in FIB_LEVELS}
