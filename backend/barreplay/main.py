import logging
import math
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .candle_client import CandleClient
from .config import configure_logging, interval_to_timedelta
from .coordinates import LinearChartView
from .errors import CandleSourceError, NoActiveCandleError, SessionNotFoundError
from .indicators import calculate_ema, calculate_fibonacci_levels, calculate_sma
from .render import serialize_commands
from .schemas import (
    CandleSchema,
    DrawingSchema,
    FetchCandlesPayload,
    KeyPayload,
    LoadCandlesPayload,
    PointerPayload,
    SeekPayload,
    SpeedPayload,
    StepPayload,
    TextPayload,
    ToolPayload,
    TradePayload,
    ViewPayload,
)
from .session import BacktestSession
from .session_storage import SessionStore
from .trading_models import Candle, GroupedPosition, PerformanceStats, Position, Trade

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 500

_SESSION: Optional[BacktestSession] = None
_STORE: Optional[SessionStore] = None


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    yield
    if _SESSION is not None:
        _SESSION.pause()


app = FastAPI(title="Bar Replay Backtester API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_session() -> BacktestSession:
    global _SESSION
    if _SESSION is None:
        _SESSION = BacktestSession()
    return _SESSION


def get_store() -> SessionStore:
    global _STORE
    if _STORE is None:
        _STORE = SessionStore()
    return _STORE


def get_candle_client() -> CandleClient:
    return CandleClient()


def _normalize_interval(interval: str) -> str:
    value = interval.lower()
    try:
        interval_to_timedelta(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return value


# ---- serializers

def _serialize_trade(trade: Trade) -> Dict[str, Any]:
    return asdict(trade)


def _serialize_position(position: Optional[Position]) -> Optional[Dict[str, Any]]:
    return asdict(position) if position is not None else None


def _serialize_group(group: GroupedPosition) -> Dict[str, Any]:
    return asdict(group)


def _serialize_stats(stats: PerformanceStats) -> Dict[str, Any]:
    payload = asdict(stats)
    # JSON has no infinity
    payload["profit_factor_unbounded"] = math.isinf(stats.profit_factor)
    if payload["profit_factor_unbounded"]:
        payload["profit_factor"] = None
    return payload


def _session_payload(session: BacktestSession) -> Dict[str, Any]:
    candle = session.current_candle
    return {
        "instrument": session.instrument,
        "interval": session.interval,
        "current_index": session.current_index,
        "candle_count": len(session.candles),
        "current_candle": asdict(candle) if candle else None,
        "is_playing": session.is_playing,
        "speed": session.speed,
        "position": _serialize_position(session.position),
        "realized_pnl": session.realized_pnl,
        "unrealized_pnl": session.unrealized_pnl,
        "trade_count": len(session.trades),
    }


def _drawing_state(session: BacktestSession) -> Dict[str, Any]:
    engine = session.drawing
    pending = engine.pending_text
    return {
        "active_tool": engine.active_tool,
        "state": engine.state,
        "selected_id": engine.selected_id,
        "pending_text": (
            {"tool": pending.tool, "x": pending.anchor.x, "y": pending.anchor.y} if pending else None
        ),
        "drawings": [DrawingSchema.from_drawing(d).model_dump() for d in engine.drawings],
    }


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "timestamp": datetime.now(tz=timezone.utc).isoformat()}


# ============ Session / playback ============


def _load_series(
    session: BacktestSession,
    candles: List[Candle],
    instrument: str,
    interval: str,
    timeframe: Optional[str],
) -> None:
    if timeframe is not None:
        timeframe = _normalize_interval(timeframe)
    try:
        session.load_candles(candles, instrument, interval, timeframe)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.get("/api/session")
def read_session(session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    return _session_payload(session)


@app.post("/api/session/candles")
def load_candles(payload: LoadCandlesPayload, session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    interval = _normalize_interval(payload.interval)
    _load_series(session, [c.to_candle() for c in payload.candles], payload.instrument, interval, payload.timeframe)
    session.sync_view()
    return _session_payload(session)


@app.post("/api/session/fetch")
async def fetch_candles(
    payload: FetchCandlesPayload,
    session: BacktestSession = Depends(get_session),
    client: CandleClient = Depends(get_candle_client),
) -> Dict[str, Any]:
    interval = _normalize_interval(payload.interval)
    try:
        candles = await client.fetch(
            payload.instrument,
            interval,
            payload.from_date,
            payload.to_date,
            security_id=payload.security_id,
            exchange_segment=payload.exchange_segment,
        )
    except CandleSourceError as exc:
        logger.error("[FetchCandles] %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if not candles:
        raise HTTPException(status_code=404, detail="No candles found")

    _load_series(session, candles, payload.instrument, interval, payload.timeframe)
    session.from_date = payload.from_date
    session.to_date = payload.to_date
    session.sync_view()
    return _session_payload(session)


@app.get("/api/session/candles")
def visible_candles(session: BacktestSession = Depends(get_session)) -> List[CandleSchema]:
    return [CandleSchema.from_candle(c) for c in session.visible_candles]


@app.post("/api/session/step")
def step(payload: StepPayload, session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    session.step(payload.direction)
    return _session_payload(session)


@app.post("/api/session/seek")
def seek(payload: SeekPayload, session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    if not session.seek(payload.index):
        raise HTTPException(status_code=400, detail=f"Index out of range: {payload.index}")
    return _session_payload(session)


@app.post("/api/session/speed")
def set_speed(payload: SpeedPayload, session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    session.set_speed(payload.speed)
    return _session_payload(session)


@app.post("/api/session/play")
async def play(session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    session.play()
    return _session_payload(session)


@app.post("/api/session/pause")
async def pause(session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    session.pause()
    return _session_payload(session)


@app.post("/api/session/reset")
def reset_session(session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    session.reset_session()
    logger.info("[ResetSession] %s", session.instrument)
    return _session_payload(session)


@app.post("/api/session/save")
def save_session(
    name: str = Query("current_session", min_length=1),
    session: BacktestSession = Depends(get_session),
    store: SessionStore = Depends(get_store),
) -> Dict[str, Any]:
    store.save(session.to_snapshot(name))
    return {"success": True, "name": name}


@app.post("/api/session/load")
def load_session(
    name: str = Query("current_session", min_length=1),
    session: BacktestSession = Depends(get_session),
    store: SessionStore = Depends(get_store),
) -> Dict[str, Any]:
    try:
        snapshot = store.load(name)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    session.restore(snapshot)
    return _session_payload(session)


@app.get("/api/sessions")
def list_sessions(store: SessionStore = Depends(get_store)) -> List[str]:
    return store.list_sessions()


# ============ Trading ============


@app.post("/api/trades")
def execute_trade(payload: TradePayload, session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    try:
        trade = session.execute_trade(payload.direction, payload.quantity)
    except NoActiveCandleError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"trade": _serialize_trade(trade), "position": _serialize_position(session.position)}


@app.get("/api/trades")
def list_trades(
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    offset: int = Query(0, ge=0),
    session: BacktestSession = Depends(get_session),
) -> Dict[str, Any]:
    ordered = list(reversed(session.trades))
    total = len(ordered)
    items = [_serialize_trade(t) for t in ordered[offset:offset + limit]]
    return {
        "items": items,
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(items) < total,
    }


@app.get("/api/position")
def read_position(session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    return {
        "position": _serialize_position(session.position),
        "realized_pnl": session.realized_pnl,
        "unrealized_pnl": session.unrealized_pnl,
    }


@app.get("/api/positions")
def grouped_positions(
    status: Optional[Literal["OPEN", "CLOSED"]] = Query(None),
    session: BacktestSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    groups = session.grouped_positions()
    if status is not None:
        groups = [g for g in groups if g.status == status]
    return [_serialize_group(g) for g in groups]


@app.get("/api/stats")
def performance_stats(session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    return _serialize_stats(session.performance_stats())


@app.post("/api/journal")
def save_to_journal(
    session: BacktestSession = Depends(get_session),
    store: SessionStore = Depends(get_store),
) -> Dict[str, Any]:
    stats = session.performance_stats()
    record = store.save_trade_session(session.instrument, session.trades, stats.total_pnl, stats.win_rate)
    return record.model_dump()


@app.get("/api/journal")
def list_journal(store: SessionStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return [record.model_dump() for record in store.list_trade_sessions()]


@app.delete("/api/journal/{session_id}")
def delete_journal_entry(session_id: str, store: SessionStore = Depends(get_store)) -> Dict[str, Any]:
    if not store.delete_trade_session(session_id):
        raise HTTPException(status_code=404, detail="Trade session not found")
    return {"success": True, "id": session_id}


@app.get("/api/indicators")
def indicators(
    kind: Literal["sma", "ema", "fib"] = Query("sma"),
    period: int = Query(20, ge=1, le=500),
    session: BacktestSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    candles = session.visible_candles
    if kind == "sma":
        return calculate_sma(candles, period)
    if kind == "ema":
        return calculate_ema(candles, period)
    # Retracement of the high/low range over the last `period` visible candles
    window = candles[-period:]
    if not window:
        return []
    levels = calculate_fibonacci_levels(max(c.high for c in window), min(c.low for c in window))
    return [{"level": level, "price": price} for level, price in levels.items()]


# ============ Drawings ============


@app.post("/api/drawings/view")
def set_view(payload: ViewPayload, session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    view = session.view
    if view is None:
        view = LinearChartView(payload.width, payload.height)
        session.view = view
        session.drawing.attach_view(view)
    else:
        view.resize(payload.width, payload.height)

    try:
        if payload.price_low is not None and payload.price_high is not None:
            view.set_price_range(payload.price_low, payload.price_high)
        if payload.logical_from is not None and payload.logical_to is not None:
            view.set_visible_range(payload.logical_from, payload.logical_to)
        elif view.visible_logical_range() is None:
            session.sync_view()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {
        "ready": view.is_ready(),
        "logical_range": view.visible_logical_range(),
        "price_range": view.visible_price_range(),
    }


@app.get("/api/drawings")
def list_drawings(session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    return _drawing_state(session)


@app.post("/api/drawings/tool")
def set_tool(payload: ToolPayload, session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    session.drawing.set_tool(payload.tool)
    if payload.color is not None:
        session.drawing.set_color(payload.color)
    return _drawing_state(session)


@app.post("/api/drawings/pointer")
def pointer_event(payload: PointerPayload, session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    engine = session.drawing
    if payload.action == "down":
        engine.pointer_down(payload.x, payload.y)
    elif payload.action == "move":
        engine.pointer_move(payload.x, payload.y)
    else:
        engine.pointer_up()
    return _drawing_state(session)


@app.post("/api/drawings/key")
def key_event(payload: KeyPayload, session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    session.drawing.key_down(payload.key)
    return _drawing_state(session)


@app.post("/api/drawings/text")
def submit_text(payload: TextPayload, session: BacktestSession = Depends(get_session)) -> Dict[str, Any]:
    engine = session.drawing
    if engine.pending_text is None:
        raise HTTPException(status_code=409, detail="No text input pending")
    if payload.text is None:
        engine.cancel_text()
    else:
        engine.submit_text(payload.text)
    return _drawing_state(session)


@app.get("/api/drawings/render")
def render_drawings(session: BacktestSession = Depends(get_session)) -> List[Dict[str, Any]]:
    return serialize_commands(session.drawing.render())


@app.delete("/api/drawings/{drawing_id}")
def remove_drawing(drawing_id: str, session: BacktestSession = Depends(get_session)) -> dict:
    """Delete a drawing by ID."""
    if not session.drawing.delete_drawing(drawing_id):
        raise HTTPException(status_code=404, detail="Drawing not found")
    return {"success": True, "id": drawing_id}


@app.delete("/api/drawings")
def clear_drawings(session: BacktestSession = Depends(get_session)) -> dict:
    """Delete every drawing."""
    count = len(session.drawing.drawings)
    session.drawing.clear_drawings()
    return {"success": True, "deleted": count}
