from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from .config import CANDLE_API_TIMEOUT, CANDLE_API_URL
from .errors import CandleSourceError
from .resampler import parse_columnar_data
from .trading_models import Candle

logger = logging.getLogger(__name__)

_CANDLES_PATH = "/api/data/candles"


def _parse_candles(payload: object) -> List[Candle]:
    data = payload.get("data") if isinstance(payload, dict) else None
    if isinstance(data, dict):
        try:
            return parse_columnar_data(data)
        except (TypeError, ValueError) as exc:
            raise CandleSourceError(f"Malformed columnar candles: {exc}") from exc
    if not isinstance(data, list):
        raise CandleSourceError("Candle source returned an unexpected payload")

    candles: List[Candle] = []
    for entry in data:
        try:
            candles.append(
                Candle(
                    timestamp=int(entry["timestamp"]),
                    open=float(entry["open"]),
                    high=float(entry["high"]),
                    low=float(entry["low"]),
                    close=float(entry["close"]),
                    volume=int(entry.get("volume", 0)),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CandleSourceError(f"Malformed candle: {entry!r}") from exc
    return candles


class CandleClient:
    """Client for the candle backend (fetch + cache proxy to market-data providers).

    The backend returns deduplicated candles in ascending timestamp order;
    they are passed through without re-sorting.
    """

    def __init__(
        self,
        base_url: str = CANDLE_API_URL,
        timeout: float = CANDLE_API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def fetch(
        self,
        instrument: str,
        interval: str,
        from_date: str,
        to_date: str,
        security_id: Optional[str] = None,
        exchange_segment: Optional[str] = None,
    ) -> List[Candle]:
        params: Dict[str, str] = {
            "instrument": instrument,
            "interval": interval,
            "fromDate": from_date,
            "toDate": to_date,
        }
        if security_id is not None:
            params["securityId"] = security_id
        if exchange_segment is not None:
            params["exchangeSegment"] = exchange_segment

        try:
            async with self._client() as client:
                response = await client.get(_CANDLES_PATH, params=params)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            raise CandleSourceError(f"Candle fetch failed for {instrument} {interval}: {exc}") from exc
        except ValueError as exc:
            raise CandleSourceError("Candle source returned invalid JSON") from exc

        candles = _parse_candles(payload)
        logger.info("Fetched %d candles for %s %s (%s -> %s)", len(candles), instrument, interval, from_date, to_date)
        return candles

    async def health_check(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get("/health")
                return response.status_code == 200 and response.json().get("status") == "healthy"
        except (httpx.HTTPError, ValueError):
            return False
