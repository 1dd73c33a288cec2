"""Trading engine core logic."""

import logging
import threading
import uuid
from typing import List, Optional, Sequence

from .errors import InvalidDirectionError, InvalidQuantityError, NoActiveCandleError
from .events_bus import EventBus
from .trading_models import (
    BUY,
    NEUTRAL_PRICE,
    TRADE_TYPES,
    Candle,
    Position,
    Trade,
    closing_pnl,
    weighted_average_price,
)

logger = logging.getLogger(__name__)


def generate_trade_id() -> str:
    return str(uuid.uuid4())


class TradingEngine:
    """Single-instrument position accounting over signed quantities.

    Buys add, sells subtract. A trade against the open side first closes up to
    the open quantity, realizing PnL, and any remainder opens a fresh position
    in the trade's direction at the trade price.
    """

    def __init__(self, instrument: str, events: Optional[EventBus] = None):
        self.instrument = instrument
        self.events = events or EventBus()
        self.position = Position(instrument=instrument)
        self.trades: List[Trade] = []
        self._lock = threading.Lock()

    @property
    def realized_pnl(self) -> float:
        return self.position.realized_pnl

    def current_position(self) -> Optional[Position]:
        """The open position, or None when flat."""
        return None if self.position.is_empty() else self.position

    def unrealized_pnl(self, mark_price: Optional[float]) -> float:
        if mark_price is None:
            return 0.0
        return self.position.unrealized_pnl(mark_price)

    def execute_trade(self, direction: str, quantity: int, candle: Optional[Candle]) -> Trade:
        """
        Execute a market trade at the close of ``candle``.

        Args:
            direction: "BUY" or "SELL"
            quantity: positive whole number of units
            candle: the candle under the playback cursor

        Returns:
            Trade: the appended execution record
        """
        if direction not in TRADE_TYPES:
            raise InvalidDirectionError(f"Unsupported trade direction: {direction}")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantityError("Quantity must be a positive integer")
        if candle is None:
            logger.warning("Rejected %s %s: no active candle", direction, quantity)
            raise NoActiveCandleError()

        with self._lock:
            trade = self._apply(direction, quantity, candle)
            self.trades.append(trade)

        logger.info(
            "Executed %s %d %s @ %.4f (position %d, realized %.2f)",
            trade.type, trade.quantity, trade.instrument, trade.price,
            self.position.quantity, self.position.realized_pnl,
        )
        self.events.dispatch({
            "type": "trade",
            "trade_id": trade.id,
            "direction": trade.type,
            "price": trade.price,
            "qty": trade.quantity,
            "pnl": trade.pnl,
        })
        self.events.dispatch({
            "type": "position",
            "quantity": self.position.quantity,
            "average_price": self.position.average_price,
            "realized_pnl": self.position.realized_pnl,
        })
        return trade

    def _apply(self, direction: str, quantity: int, candle: Candle) -> Trade:
        pos = self.position
        price = candle.close
        sign = 1 if direction == BUY else -1
        signed_delta = quantity * sign
        pnl: Optional[float] = None

        if pos.quantity == 0:
            # open
            pos.quantity = signed_delta
            pos.average_price = price
        elif (pos.quantity > 0) == (sign > 0):
            # scale in
            pos.average_price = weighted_average_price(pos.average_price, abs(pos.quantity), price, quantity)
            pos.quantity += signed_delta
        else:
            # reduce, flatten or flip
            existing_sign = 1 if pos.quantity > 0 else -1
            closing_qty = min(abs(pos.quantity), quantity)
            pnl = closing_pnl(existing_sign, pos.average_price, price, closing_qty)
            pos.realized_pnl += pnl

            remainder = quantity - closing_qty
            if remainder > 0:
                pos.quantity = sign * remainder
                pos.average_price = price
            else:
                pos.quantity += signed_delta
                if pos.quantity == 0:
                    pos.average_price = NEUTRAL_PRICE

        return Trade(
            id=generate_trade_id(),
            timestamp=candle.timestamp,
            type=direction,
            price=price,
            quantity=quantity,
            instrument=self.instrument,
            pnl=pnl,
        )

    def reset(self, instrument: Optional[str] = None) -> None:
        """Drop every trade and return to a flat position."""
        with self._lock:
            if instrument is not None:
                self.instrument = instrument
            self.position = Position(instrument=self.instrument)
            self.trades = []
        self.events.dispatch({"type": "position", "quantity": 0, "average_price": NEUTRAL_PRICE, "realized_pnl": 0.0})

    def restore(self, trades: Sequence[Trade], position: Optional[Position]) -> None:
        """Replace the trade log and position with a persisted snapshot."""
        with self._lock:
            self.trades = list(trades)
            if position is None:
                realized = sum(t.pnl for t in self.trades if t.pnl is not None)
                self.position = Position(instrument=self.instrument, realized_pnl=realized)
            else:
                self.position = Position(
                    instrument=position.instrument,
                    quantity=position.quantity,
                    average_price=position.average_price if position.quantity else NEUTRAL_PRICE,
                    realized_pnl=position.realized_pnl,
                )
