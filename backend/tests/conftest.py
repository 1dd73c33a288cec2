"""Shared fixtures for the barreplay test suite."""

from typing import List

import pytest

from barreplay.coordinates import LinearChartView
from barreplay.drawing_engine import DrawingEngine
from barreplay.events_bus import EventBus
from barreplay.session import BacktestSession
from barreplay.session_storage import SessionStore
from barreplay.trading_models import Candle

BASE_TS = 1_700_000_040  # a minute boundary


def make_candles(closes: List[float], start: int = BASE_TS, step: int = 60) -> List[Candle]:
    return [
        Candle(
            timestamp=start + i * step,
            open=close - 0.5,
            high=close + 1.0,
            low=close - 1.0,
            close=close,
            volume=100 + i,
        )
        for i, close in enumerate(closes)
    ]


def make_candle(close: float, timestamp: int = BASE_TS) -> Candle:
    return Candle(timestamp, close, close, close, close, 0)


@pytest.fixture
def candles() -> List[Candle]:
    return make_candles([100.0 + i for i in range(10)])


@pytest.fixture
def view() -> LinearChartView:
    """800x400 overlay showing bars 0..100 and prices 0..100.

    x = bar * 8, y = (100 - price) * 4.
    """
    return LinearChartView(800, 400, logical_range=(0.0, 100.0), price_range=(0.0, 100.0))


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def recorded(events) -> list:
    received: list = []
    events.subscribe(received.append)
    return received


@pytest.fixture
def engine(view, events) -> DrawingEngine:
    return DrawingEngine(view, events=events)


@pytest.fixture
def session(candles) -> BacktestSession:
    s = BacktestSession(view=LinearChartView(800, 400))
    s.load_candles(candles, "TEST", "1m")
    return s


@pytest.fixture
def store(tmp_path) -> SessionStore:
    return SessionStore(tmp_path / "sessions.db")
