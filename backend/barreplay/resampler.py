"""Candle parsing and timeframe aggregation."""
from typing import Dict, Iterable, List, Sequence

from .config import interval_to_timedelta
from .trading_models import Candle


def parse_columnar_data(data: Dict[str, Sequence[float]]) -> List[Candle]:
    """Build candles from columnar ``{t, o, h, l, c, v}`` arrays."""
    columns = ("t", "o", "h", "l", "c", "v")
    missing = [key for key in columns if key not in data]
    if missing:
        raise ValueError(f"Columnar data missing keys: {', '.join(missing)}")
    length = len(data["t"])
    if any(len(data[key]) != length for key in columns):
        raise ValueError("Columnar arrays must have equal length")

    return [
        Candle(
            timestamp=int(data["t"][i]),
            open=float(data["o"][i]),
            high=float(data["h"][i]),
            low=float(data["l"][i]),
            close=float(data["c"][i]),
            volume=int(data["v"][i]),
        )
        for i in range(length)
    ]


def _aggregate(bucket: Sequence[Candle], timestamp: int) -> Candle:
    return Candle(
        timestamp=timestamp,
        open=bucket[0].open,
        high=max(c.high for c in bucket),
        low=min(c.low for c in bucket),
        close=bucket[-1].close,
        volume=sum(c.volume for c in bucket),
    )


def resample_candles(candles: Iterable[Candle], timeframe_minutes: int) -> List[Candle]:
    """
    Aggregate 1-minute candles into ``timeframe_minutes`` buckets.

    Buckets are aligned to multiples of the timeframe (09:15, 09:20, ...) and
    stamped with their start time.
    """
    source = list(candles)
    if timeframe_minutes <= 1:
        return source

    step = timeframe_minutes * 60
    resampled: List[Candle] = []
    bucket: List[Candle] = []
    bucket_start = None

    for candle in source:
        start = candle.timestamp // step * step
        if bucket and start != bucket_start:
            resampled.append(_aggregate(bucket, bucket_start))
            bucket = []
        bucket_start = start
        bucket.append(candle)

    if bucket:
        resampled.append(_aggregate(bucket, bucket_start))
    return resampled


def timeframe_minutes(source_interval: str, target_interval: str) -> int:
    """Bucket size for aggregating ``source_interval`` bars into ``target_interval`` bars."""
    source = interval_to_timedelta(source_interval)
    target = interval_to_timedelta(target_interval)
    if target < source or target % source:
        raise ValueError(f"Cannot resample {source_interval} candles to {target_interval}")
    return int(target.total_seconds() // 60)
