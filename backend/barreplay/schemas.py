from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .models import Drawing
from .trading_models import Candle, Position, Trade


class CandleSchema(BaseModel):
    timestamp: int = Field(..., description="Unix timestamp in seconds")
    open: float
    high: float
    low: float
    close: float
    volume: int = 0

    def to_candle(self) -> Candle:
        return Candle(self.timestamp, self.open, self.high, self.low, self.close, self.volume)

    @classmethod
    def from_candle(cls, candle: Candle) -> "CandleSchema":
        return cls(
            timestamp=candle.timestamp,
            open=candle.open,
            high=candle.high,
            low=candle.low,
            close=candle.close,
            volume=candle.volume,
        )


class TradeSchema(BaseModel):
    id: str
    timestamp: int
    type: Literal["BUY", "SELL"]
    price: float
    quantity: int = Field(..., gt=0)
    instrument: str
    pnl: Optional[float] = None

    def to_trade(self) -> Trade:
        return Trade(self.id, self.timestamp, self.type, self.price, self.quantity, self.instrument, self.pnl)

    @classmethod
    def from_trade(cls, trade: Trade) -> "TradeSchema":
        return cls(
            id=trade.id,
            timestamp=trade.timestamp,
            type=trade.type,
            price=trade.price,
            quantity=trade.quantity,
            instrument=trade.instrument,
            pnl=trade.pnl,
        )


class PositionSchema(BaseModel):
    instrument: str
    quantity: int
    average_price: float
    realized_pnl: float = 0.0

    def to_position(self) -> Position:
        return Position(self.instrument, self.quantity, self.average_price, self.realized_pnl)

    @classmethod
    def from_position(cls, position: Position) -> "PositionSchema":
        return cls(
            instrument=position.instrument,
            quantity=position.quantity,
            average_price=position.average_price,
            realized_pnl=position.realized_pnl,
        )


class PointSchema(BaseModel):
    x: float
    y: float
    time: Optional[float] = None
    price: Optional[float] = None


class DrawingSchema(BaseModel):
    id: str
    type: Literal["freehand", "trendline", "horizontal", "rectangle", "fibonacci", "riskReward", "text", "callout"]
    points: List[PointSchema]
    color: str = "#000000"
    text: Optional[str] = None

    def to_drawing(self) -> Drawing:
        return Drawing.from_dict(self.model_dump(exclude_none=True))

    @classmethod
    def from_drawing(cls, drawing: Drawing) -> "DrawingSchema":
        return cls.model_validate(drawing.to_dict())


class SessionConfig(BaseModel):
    instrument: str = ""
    interval: str = "1m"
    from_date: Optional[str] = None
    to_date: Optional[str] = None


class SessionSnapshot(BaseModel):
    """Atomic session blob: configuration, trade log, position, cursor and drawings."""
    name: str = "current_session"
    config: SessionConfig = Field(default_factory=SessionConfig)
    current_index: int = 0
    trades: List[TradeSchema] = Field(default_factory=list)
    position: Optional[PositionSchema] = None
    drawings: List[DrawingSchema] = Field(default_factory=list)
    last_updated: Optional[datetime] = None


class TradeSessionRecord(BaseModel):
    """A finished session kept in the trade journal."""
    id: str
    instrument: str
    start_date: int
    end_date: int
    trades: List[TradeSchema]
    total_pnl: float
    win_rate: float
    total_trades: int


# ---- request payloads

class LoadCandlesPayload(BaseModel):
    instrument: str = Field(..., min_length=1)
    interval: str = "1m"
    timeframe: Optional[str] = None
    candles: List[CandleSchema]


class FetchCandlesPayload(BaseModel):
    instrument: str = Field(..., min_length=1)
    interval: str = "1m"
    timeframe: Optional[str] = None
    from_date: str
    to_date: str
    security_id: Optional[str] = None
    exchange_segment: Optional[str] = None


class TradePayload(BaseModel):
    direction: Literal["BUY", "SELL"]
    quantity: int = Field(..., gt=0)


class StepPayload(BaseModel):
    direction: Literal["forward", "backward"] = "forward"


class SeekPayload(BaseModel):
    index: int


class SpeedPayload(BaseModel):
    speed: float = Field(..., gt=0)


class ToolPayload(BaseModel):
    tool: Literal[
        "none", "select", "freehand", "trendline", "horizontal", "rectangle",
        "fibonacci", "riskReward", "text", "callout",
    ]
    color: Optional[str] = None


class PointerPayload(BaseModel):
    action: Literal["down", "move", "up"]
    x: float = 0.0
    y: float = 0.0


class KeyPayload(BaseModel):
    key: str = Field(..., min_length=1)


class TextPayload(BaseModel):
    text: Optional[str] = None  # None cancels the prompt


class ViewPayload(BaseModel):
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    logical_from: Optional[float] = None
    logical_to: Optional[float] = None
    price_low: Optional[float] = None
    price_high: Optional[float] = None
