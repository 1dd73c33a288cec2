import pytest

from barreplay.indicators import calculate_ema, calculate_fibonacci_levels, calculate_sma
from barreplay.resampler import parse_columnar_data, resample_candles

from conftest import make_candles

ALIGNED_TS = 1_700_000_100  # multiple of 300


def test_sma_one_point_per_full_window():
    candles = make_candles([1.0, 2.0, 3.0, 4.0, 5.0])
    sma = calculate_sma(candles, 3)
    assert [p["value"] for p in sma] == pytest.approx([2.0, 3.0, 4.0])
    assert sma[0]["time"] == candles[2].timestamp


def test_ema_seeded_with_sma():
    candles = make_candles([1.0, 2.0, 3.0, 4.0])
    ema = calculate_ema(candles, 3)
    assert ema[0]["value"] == pytest.approx(2.0)
    assert ema[1]["value"] == pytest.approx(3.0)  # (4 - 2) * 0.5 + 2
    assert calculate_ema(candles[:2], 3) == []


def test_moving_averages_reject_bad_period():
    with pytest.raises(ValueError):
        calculate_sma([], 0)
    with pytest.raises(ValueError):
        calculate_ema([], -1)


def test_fibonacci_price_levels():
    levels = calculate_fibonacci_levels(200.0, 100.0)
    assert levels[0.0] == pytest.approx(100.0)
    assert levels[0.618] == pytest.approx(161.8)
    assert levels[1.0] == pytest.approx(200.0)


def test_parse_columnar_data():
    candles = parse_columnar_data({
        "t": [1, 2], "o": [1.0, 2.0], "h": [2.0, 3.0], "l": [0.5, 1.5], "c": [1.5, 2.5], "v": [10, 20],
    })
    assert [c.timestamp for c in candles] == [1, 2]
    assert candles[1].close == 2.5
    assert candles[1].volume == 20


@pytest.mark.parametrize("data", [
    {"t": [1], "o": [1.0], "h": [1.0], "l": [1.0], "c": [1.0]},
    {"t": [1, 2], "o": [1.0], "h": [1.0], "l": [1.0], "c": [1.0], "v": [1]},
])
def test_parse_columnar_data_rejects_bad_shapes(data):
    with pytest.raises(ValueError):
        parse_columnar_data(data)


def test_resample_aggregates_aligned_buckets():
    candles = make_candles([float(i) for i in range(1, 13)], start=ALIGNED_TS)
    bars = resample_candles(candles, 5)

    assert [b.timestamp for b in bars] == [ALIGNED_TS, ALIGNED_TS + 300, ALIGNED_TS + 600]
    first = bars[0]
    assert first.open == candles[0].open
    assert first.close == candles[4].close
    assert first.high == max(c.high for c in candles[:5])
    assert first.low == min(c.low for c in candles[:5])
    assert first.volume == sum(c.volume for c in candles[:5])
    assert bars[-1].close == candles[-1].close  # trailing partial bucket


def test_resample_one_minute_is_passthrough():
    candles = make_candles([1.0, 2.0])
    assert resample_candles(candles, 1) == candles
