"""Backtest session: candle cursor, playback, trading and drawings in one context."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .config import DEFAULT_SPEED, interval_to_timedelta
from .coordinates import LinearChartView
from .drawing_engine import DrawingEngine
from .events_bus import EventBus
from .resampler import resample_candles, timeframe_minutes
from .schemas import (
    DrawingSchema,
    PositionSchema,
    SessionConfig,
    SessionSnapshot,
    TradeSchema,
)
from .trade_analysis import calculate_performance_stats, group_trades_into_positions
from .trading_engine import TradingEngine
from .trading_models import Candle, GroupedPosition, PerformanceStats, Position, Trade

logger = logging.getLogger(__name__)

FORWARD = "forward"
BACKWARD = "backward"


class PlaybackTimer:
    """Steps the session forward once every ``1 / speed`` seconds."""

    def __init__(self, session: "BacktestSession") -> None:
        self._session = session
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"playback-{self._session.instrument}")

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(1.0 / self._session.speed)
            if not self._session.tick():
                break


class BacktestSession:
    def __init__(self, instrument: str = "", interval: str = "1m", view: Optional[LinearChartView] = None) -> None:
        self.events = EventBus()
        self.instrument = instrument
        self.interval = interval
        self.from_date: Optional[str] = None
        self.to_date: Optional[str] = None
        self.candles: List[Candle] = []
        self.current_index = 0
        self.speed = DEFAULT_SPEED
        self.is_playing = False

        self.trading = TradingEngine(instrument, events=self.events)
        self.view = view
        self.drawing = DrawingEngine(view, events=self.events)
        self._timer = PlaybackTimer(self)

    # -------------------------------------------------------------- candles

    def load_candles(
        self,
        candles: Sequence[Candle],
        instrument: str,
        interval: Optional[str] = None,
        timeframe: Optional[str] = None,
    ) -> None:
        """Replace the series; cursor, trades, position and playback start over.

        With ``timeframe`` the ``interval`` bars are aggregated into aligned
        ``timeframe`` bars before loading.
        """
        if interval is not None:
            interval_to_timedelta(interval)
        if timeframe is not None:
            candles = resample_candles(candles, timeframe_minutes(interval or self.interval, timeframe))
            interval = timeframe
        self.pause()
        self.candles = list(candles)
        self.instrument = instrument
        if interval is not None:
            self.interval = interval
        self.current_index = 0
        self.trading.reset(instrument)
        logger.info("Loaded %d candles for %s %s", len(self.candles), instrument, self.interval)
        self._dispatch("loaded", count=len(self.candles))

    @property
    def current_candle(self) -> Optional[Candle]:
        if 0 <= self.current_index < len(self.candles):
            return self.candles[self.current_index]
        return None

    @property
    def visible_candles(self) -> List[Candle]:
        return self.candles[: self.current_index + 1]

    def step(self, direction: str = FORWARD) -> bool:
        if direction == FORWARD and self.current_index < len(self.candles) - 1:
            self.current_index += 1
        elif direction == BACKWARD and self.current_index > 0:
            self.current_index -= 1
        else:
            if direction not in (FORWARD, BACKWARD):
                raise ValueError(f"Unsupported step direction: {direction}")
            return False
        self._dispatch("cursor", index=self.current_index)
        return True

    def seek(self, index: int) -> bool:
        if 0 <= index < len(self.candles):
            self.current_index = index
            self._dispatch("cursor", index=index)
            return True
        return False

    # ------------------------------------------------------------- playback

    def set_speed(self, speed: float) -> None:
        if speed <= 0:
            raise ValueError("Playback speed must be positive")
        self.speed = float(speed)
        self._dispatch("speed", speed=self.speed)

    def play(self) -> None:
        """Start auto-advancing. Needs a running event loop for the timer."""
        if self.is_playing or self.current_index >= len(self.candles) - 1:
            return
        self._timer.start()
        self.is_playing = True
        self._dispatch("playing")

    def pause(self) -> None:
        self._timer.stop()
        if self.is_playing:
            self.is_playing = False
            self._dispatch("paused")

    def tick(self) -> bool:
        """Advance once while playing; stops playback at the last candle."""
        if not self.is_playing:
            return False
        self.step(FORWARD)
        if self.current_index >= len(self.candles) - 1:
            self.pause()
            return False
        return True

    # -------------------------------------------------------------- trading

    def execute_trade(self, direction: str, quantity: int) -> Trade:
        return self.trading.execute_trade(direction, quantity, self.current_candle)

    @property
    def trades(self) -> List[Trade]:
        return self.trading.trades

    @property
    def position(self) -> Optional[Position]:
        return self.trading.current_position()

    @property
    def realized_pnl(self) -> float:
        return self.trading.realized_pnl

    @property
    def unrealized_pnl(self) -> float:
        candle = self.current_candle
        return self.trading.unrealized_pnl(candle.close if candle else None)

    def grouped_positions(self) -> List[GroupedPosition]:
        candle = self.current_candle
        return group_trades_into_positions(self.trades, candle.close if candle else None)

    def performance_stats(self) -> PerformanceStats:
        return calculate_performance_stats(self.grouped_positions())

    def reset_session(self) -> None:
        """Clear trades, position and cursor together; candles and drawings stay."""
        self.pause()
        self.current_index = 0
        self.trading.reset()
        logger.info("Session reset for %s", self.instrument)
        self._dispatch("reset")

    # ----------------------------------------------------------------- view

    def sync_view(self, bars: int = 100, right_margin: float = 5.0, padding: float = 0.05) -> None:
        """Frame the chart view on the candles up to the cursor."""
        if self.view is None or not self.candles:
            return
        end = self.current_index + 0.5 + right_margin
        start = max(-0.5, self.current_index - bars + 0.5)
        window = self.candles[max(0, self.current_index - bars + 1): self.current_index + 1]
        low = min(c.low for c in window)
        high = max(c.high for c in window)
        pad = (high - low) * padding or abs(high) * padding or 1.0
        self.view.set_price_range(low - pad, high + pad)
        self.view.set_visible_range(start, end)

    # ---------------------------------------------------------- persistence

    def to_snapshot(self, name: str = "current_session") -> SessionSnapshot:
        position = self.position
        return SessionSnapshot(
            name=name,
            config=SessionConfig(
                instrument=self.instrument,
                interval=self.interval,
                from_date=self.from_date,
                to_date=self.to_date,
            ),
            current_index=self.current_index,
            trades=[TradeSchema.from_trade(t) for t in self.trades],
            position=PositionSchema.from_position(position) if position else None,
            drawings=[DrawingSchema.from_drawing(d) for d in self.drawing.drawings],
            last_updated=datetime.now(tz=timezone.utc),
        )

    def restore(self, snapshot: SessionSnapshot) -> None:
        """Replace session state with ``snapshot``. Candles must already be loaded."""
        self.pause()
        config = snapshot.config
        self.instrument = config.instrument
        self.interval = config.interval
        self.from_date = config.from_date
        self.to_date = config.to_date
        self.trading.instrument = config.instrument
        self.trading.restore(
            [t.to_trade() for t in snapshot.trades],
            snapshot.position.to_position() if snapshot.position else None,
        )
        self.drawing.load_drawings([d.to_drawing() for d in snapshot.drawings])
        if self.candles:
            self.current_index = min(max(snapshot.current_index, 0), len(self.candles) - 1)
        else:
            self.current_index = snapshot.current_index
        logger.info("Restored session %s at index %d", snapshot.name, self.current_index)
        self._dispatch("restored")

    def _dispatch(self, action: str, **extra) -> None:
        payload = {"type": "session", "action": action}
        payload.update(extra)
        self.events.dispatch(payload)
