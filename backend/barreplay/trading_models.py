"""Trading system data models."""

from dataclasses import dataclass, field
from typing import List, Optional


BUY = "BUY"
SELL = "SELL"
TRADE_TYPES = (BUY, SELL)

LONG = "LONG"
SHORT = "SHORT"

OPEN = "OPEN"
CLOSED = "CLOSED"

NEUTRAL_PRICE = 0.0


@dataclass(frozen=True)
class Candle:
    """OHLCV bar"""
    timestamp: int  # seconds, strictly increasing within a series
    open: float
    high: float
    low: float
    close: float
    volume: int = 0


@dataclass(frozen=True)
class Trade:
    """Execution record"""
    id: str
    timestamp: int  # copied from the candle active at execution
    type: str  # "BUY" or "SELL"
    price: float  # candle close
    quantity: int
    instrument: str
    pnl: Optional[float] = None  # set only when the trade reduces an open position

    @property
    def sign(self) -> int:
        return 1 if self.type == BUY else -1


@dataclass
class Position:
    """The single running position of a session."""
    instrument: str
    quantity: int = 0  # positive = long, negative = short
    average_price: float = NEUTRAL_PRICE  # cost basis of the open side
    realized_pnl: float = 0.0

    def is_empty(self) -> bool:
        return self.quantity == 0

    def unrealized_pnl(self, mark_price: float) -> float:
        if self.quantity == 0:
            return 0.0
        # quantity is signed, so shorts come out with the right sign
        return (mark_price - self.average_price) * self.quantity


@dataclass
class GroupedPosition:
    """A flat-to-flat replay of the trade log, used for history and stats."""
    id: str
    direction: str  # "LONG" or "SHORT"
    status: str  # "OPEN" or "CLOSED"
    instrument: str
    entry_time: int
    avg_entry_price: float
    total_quantity: int
    remaining_quantity: int
    realized_pnl: float = 0.0
    exit_time: Optional[int] = None
    avg_exit_price: Optional[float] = None
    exited_quantity: int = 0
    unrealized_pnl: Optional[float] = None
    duration_minutes: Optional[float] = None
    executions: List[Trade] = field(default_factory=list)

    def is_closed(self) -> bool:
        return self.status == CLOSED


@dataclass
class DirectionBreakdown:
    count: int = 0
    pnl: float = 0.0


@dataclass
class PerformanceStats:
    """Summary over closed grouped positions."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0  # percent
    total_pnl: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0  # absolute value
    profit_factor: float = 0.0  # inf when there are wins and no losses
    expectancy: float = 0.0
    max_drawdown: float = 0.0
    longs: DirectionBreakdown = field(default_factory=DirectionBreakdown)
    shorts: DirectionBreakdown = field(default_factory=DirectionBreakdown)


def weighted_average_price(price: float, quantity: int, add_price: float, add_quantity: int) -> float:
    """Quantity-weighted average of two lots. Quantities are absolute."""
    total = quantity + add_quantity
    if total == 0:
        return NEUTRAL_PRICE
    return (price * quantity + add_price * add_quantity) / total


def closing_pnl(direction_sign: int, entry_price: float, exit_price: float, quantity: int) -> float:
    """Realized PnL of closing ``quantity`` units of a long (+1) or short (-1) lot."""
    if direction_sign > 0:
        return (exit_price - entry_price) * quantity
    return (entry_price - exit_price) * quantity
