import httpx
import pytest
from fastapi.testclient import TestClient

from barreplay.candle_client import CandleClient
from barreplay.main import app, get_candle_client, get_session, get_store
from barreplay.session import BacktestSession

from conftest import make_candles


COLUMNS = [("t", "timestamp"), ("o", "open"), ("h", "high"), ("l", "low"), ("c", "close"), ("v", "volume")]


def candle_payload(closes):
    return [
        {"timestamp": c.timestamp, "open": c.open, "high": c.high, "low": c.low, "close": c.close, "volume": c.volume}
        for c in make_candles(closes)
    ]


def upstream(request: httpx.Request) -> httpx.Response:
    if request.url.params.get("instrument") == "BROKEN":
        return httpx.Response(502, json={"error": "provider down"})
    if request.url.params.get("instrument") == "COLUMNAR":
        rows = candle_payload([50.0, 51.0, 52.0, 53.0, 54.0, 55.0])
        columns = {short: [row[name] for row in rows] for short, name in COLUMNS}
        return httpx.Response(200, json={"success": True, "data": columns})
    return httpx.Response(200, json={"success": True, "data": candle_payload([50.0, 51.0, 52.0])})


@pytest.fixture
def client(store):
    session = BacktestSession()
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_candle_client] = lambda: CandleClient(
        "http://candles.test", transport=httpx.MockTransport(upstream)
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def loaded(client):
    response = client.post(
        "/api/session/candles",
        json={"instrument": "TEST", "interval": "1m", "candles": candle_payload([100.0 + i for i in range(10)])},
    )
    assert response.status_code == 200
    return client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_load_candles_sets_cursor(loaded):
    body = loaded.get("/api/session").json()
    assert body["candle_count"] == 10
    assert body["current_index"] == 0
    assert body["current_candle"]["close"] == 100.0
    assert body["position"] is None


def test_unsupported_interval_is_rejected(client):
    response = client.post("/api/session/candles", json={"instrument": "X", "interval": "7m", "candles": []})
    assert response.status_code == 400


def test_step_and_seek(loaded):
    assert loaded.post("/api/session/step", json={"direction": "forward"}).json()["current_index"] == 1
    assert loaded.post("/api/session/seek", json={"index": 8}).json()["current_index"] == 8
    assert loaded.post("/api/session/seek", json={"index": 99}).status_code == 400
    assert len(loaded.get("/api/session/candles").json()) == 9


def test_trade_without_candles_conflicts(client):
    response = client.post("/api/trades", json={"direction": "BUY", "quantity": 1})
    assert response.status_code == 409
    assert response.json()["detail"] == "No current candle available"


def test_trade_validation(loaded):
    assert loaded.post("/api/trades", json={"direction": "BUY", "quantity": 0}).status_code == 422
    assert loaded.post("/api/trades", json={"direction": "HOLD", "quantity": 1}).status_code == 422


def test_trade_flow_and_stats(loaded):
    body = loaded.post("/api/trades", json={"direction": "BUY", "quantity": 2}).json()
    assert body["trade"]["price"] == 100.0
    assert body["position"]["quantity"] == 2

    loaded.post("/api/session/seek", json={"index": 4})
    assert loaded.get("/api/position").json()["unrealized_pnl"] == pytest.approx(8.0)

    closing = loaded.post("/api/trades", json={"direction": "SELL", "quantity": 2}).json()
    assert closing["trade"]["pnl"] == pytest.approx(8.0)
    assert closing["position"] is None

    trades = loaded.get("/api/trades", params={"limit": 1}).json()
    assert trades["total"] == 2
    assert trades["has_more"] is True
    assert trades["items"][0]["type"] == "SELL"

    positions = loaded.get("/api/positions", params={"status": "CLOSED"}).json()
    assert len(positions) == 1
    assert positions[0]["realized_pnl"] == pytest.approx(8.0)

    stats = loaded.get("/api/stats").json()
    assert stats["win_rate"] == pytest.approx(100.0)
    assert stats["profit_factor"] is None
    assert stats["profit_factor_unbounded"] is True


def test_reset_clears_trades(loaded):
    loaded.post("/api/trades", json={"direction": "SELL", "quantity": 1})
    body = loaded.post("/api/session/reset").json()
    assert body["trade_count"] == 0
    assert body["candle_count"] == 10


def test_play_and_pause(loaded):
    loaded.post("/api/session/speed", json={"speed": 0.5})
    assert loaded.post("/api/session/play").json()["is_playing"] is True
    assert loaded.post("/api/session/pause").json()["is_playing"] is False
    assert loaded.post("/api/session/speed", json={"speed": 0}).status_code == 422


def test_drawing_gesture_and_render(loaded):
    view = loaded.post("/api/drawings/view", json={"width": 800, "height": 400}).json()
    assert view["ready"] is True

    loaded.post("/api/drawings/tool", json={"tool": "trendline"})
    loaded.post("/api/drawings/pointer", json={"action": "down", "x": 100, "y": 100})
    loaded.post("/api/drawings/pointer", json={"action": "move", "x": 300, "y": 200})
    state = loaded.post("/api/drawings/pointer", json={"action": "up"}).json()

    assert state["active_tool"] == "select"
    assert len(state["drawings"]) == 1
    drawing = state["drawings"][0]
    assert drawing["type"] == "trendline"
    assert drawing["points"][0]["time"] is not None
    assert state["selected_id"] == drawing["id"]

    commands = loaded.get("/api/drawings/render").json()
    assert [c["kind"] for c in commands] == ["clear", "line", "handle", "handle"]

    assert loaded.delete(f"/api/drawings/{drawing['id']}").status_code == 200
    assert loaded.delete(f"/api/drawings/{drawing['id']}").status_code == 404


def test_text_prompt_flow(loaded):
    loaded.post("/api/drawings/view", json={"width": 800, "height": 400})
    assert loaded.post("/api/drawings/text", json={"text": "x"}).status_code == 409

    loaded.post("/api/drawings/tool", json={"tool": "text"})
    state = loaded.post("/api/drawings/pointer", json={"action": "down", "x": 50, "y": 60}).json()
    assert state["pending_text"] == {"tool": "text", "x": 50, "y": 60}

    state = loaded.post("/api/drawings/text", json={"text": "Entry idea"}).json()
    assert state["pending_text"] is None
    assert state["drawings"][0]["text"] == "Entry idea"

    cleared = loaded.delete("/api/drawings").json()
    assert cleared == {"success": True, "deleted": 1}


def test_escape_key_clears_drawings(loaded):
    loaded.post("/api/drawings/view", json={"width": 800, "height": 400})
    loaded.post("/api/drawings/tool", json={"tool": "horizontal"})
    loaded.post("/api/drawings/pointer", json={"action": "down", "x": 10, "y": 100})
    loaded.post("/api/drawings/pointer", json={"action": "move", "x": 20, "y": 100})
    loaded.post("/api/drawings/pointer", json={"action": "up"})
    assert loaded.post("/api/drawings/key", json={"key": "Escape"}).json()["drawings"] == []


def test_invalid_view_range(loaded):
    response = loaded.post(
        "/api/drawings/view",
        json={"width": 800, "height": 400, "logical_from": 5, "logical_to": 1},
    )
    assert response.status_code == 400


def test_save_and_load_session(loaded):
    loaded.post("/api/trades", json={"direction": "BUY", "quantity": 3})
    loaded.post("/api/session/seek", json={"index": 2})
    assert loaded.post("/api/session/save", params={"name": "morning"}).json() == {"success": True, "name": "morning"}
    assert loaded.get("/api/sessions").json() == ["morning"]

    loaded.post("/api/session/reset")
    body = loaded.post("/api/session/load", params={"name": "morning"}).json()
    assert body["trade_count"] == 1
    assert body["current_index"] == 2
    assert body["position"]["quantity"] == 3

    assert loaded.post("/api/session/load", params={"name": "missing"}).status_code == 404


def test_journal(loaded):
    loaded.post("/api/trades", json={"direction": "BUY", "quantity": 1})
    record = loaded.post("/api/journal").json()
    assert record["total_trades"] == 1
    assert [r["id"] for r in loaded.get("/api/journal").json()] == [record["id"]]
    assert loaded.delete(f"/api/journal/{record['id']}").status_code == 200
    assert loaded.delete(f"/api/journal/{record['id']}").status_code == 404


def test_fetch_candles_from_upstream(client):
    body = client.post(
        "/api/session/fetch",
        json={"instrument": "NIFTY", "interval": "5m", "from_date": "2024-01-01", "to_date": "2024-01-02"},
    ).json()
    assert body["candle_count"] == 3
    assert body["instrument"] == "NIFTY"
    assert body["interval"] == "5m"


def test_fetch_candles_upstream_failure(client):
    response = client.post(
        "/api/session/fetch",
        json={"instrument": "BROKEN", "interval": "1m", "from_date": "a", "to_date": "b"},
    )
    assert response.status_code == 502


def test_indicators(loaded):
    loaded.post("/api/session/seek", json={"index": 4})
    sma = loaded.get("/api/indicators", params={"kind": "sma", "period": 3}).json()
    assert [p["value"] for p in sma] == pytest.approx([101.0, 102.0, 103.0])


def test_load_candles_with_timeframe(client):
    payload = {"instrument": "TEST", "interval": "1m", "timeframe": "5m", "candles": candle_payload([1.0] * 10)}
    body = client.post("/api/session/candles", json=payload).json()
    assert body["interval"] == "5m"
    assert body["candle_count"] == 3

    payload.update(interval="5m", timeframe="1m")
    assert client.post("/api/session/candles", json=payload).status_code == 400
    payload.update(timeframe="7m")
    assert client.post("/api/session/candles", json=payload).status_code == 400


def test_fetch_columnar_candles_and_resample(client):
    body = client.post(
        "/api/session/fetch",
        json={"instrument": "COLUMNAR", "interval": "1m", "timeframe": "5m", "from_date": "a", "to_date": "b"},
    ).json()
    assert body["interval"] == "5m"
    assert body["candle_count"] == 2
    assert body["current_candle"]["close"] == 50.0


def test_fibonacci_levels_over_visible_window(loaded):
    loaded.post("/api/session/seek", json={"index": 4})
    levels = loaded.get("/api/indicators", params={"kind": "fib", "period": 3}).json()
    prices = {round(level["level"], 3): level["price"] for level in levels}
    assert len(levels) == 7
    assert prices[0.0] == pytest.approx(101.0)
    assert prices[0.5] == pytest.approx(103.0)
    assert prices[1.0] == pytest.approx(105.0)
