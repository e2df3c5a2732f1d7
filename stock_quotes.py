from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from config import Settings, get_settings
from errors import UpstreamFailure

logger = logging.getLogger(__name__)

FINNHUB_BASE_URL = "https://finnhub.io/api/v1"
HISTORY_DAYS = 30


@dataclass(frozen=True)
class PricePoint:
    date: str
    price: float


class StockQuoteService:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        if not self.settings.finnhub_api_key:
            logger.warning("stock_quotes: FINTRACK_FINNHUB_API_KEY is not set")

    def quotes(self, symbols: list[str]) -> dict[str, float]:
        clean = [s.strip() for s in symbols if s.strip()]
        if not clean:
            return {}
        with ThreadPoolExecutor(max_workers=min(8, len(clean))) as pool:
            prices = list(pool.map(self._quote, clean))
        return dict(zip(clean, prices))

    def history(self, symbol: str, now: Optional[datetime] = None) -> list[PricePoint]:
        now = now or datetime.now(timezone.utc)
        to_ts = int(now.timestamp())
        from_ts = to_ts - HISTORY_DAYS * 24 * 60 * 60
        payload = self._get(
            "/stock/candle",
            {"symbol": symbol, "resolution": "D", "from": from_ts, "to": to_ts},
            failure="Failed to fetch history",
        )
        if payload.get("s") != "ok" or not payload.get("t"):
            logger.warning(f"stock_history_empty: symbol={symbol}")
            return []

        points: list[PricePoint] = []
        for ts, close in zip(payload["t"], payload.get("c") or []):
            day = datetime.fromtimestamp(ts, tz=timezone.utc)
            points.append(PricePoint(date=day.strftime("%b %d"), price=float(close)))
        return points

    def _quote(self, symbol: str) -> float:
        payload = self._get("/quote", {"symbol": symbol}, failure="Failed to fetch quotes")
        return float(payload.get("c") or 0)

    def _get(self, path: str, params: dict[str, object], *, failure: str) -> dict:
        query = urlencode({**params, "token": self.settings.finnhub_api_key})
        req = Request(
            f"{FINNHUB_BASE_URL}{path}?{query}",
            headers={"Accept": "application/json"},
        )
        try:
            with urlopen(req, timeout=self.settings.finnhub_timeout_secs) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            details = exc.read().decode("utf-8", errors="replace")
            logger.error(f"stock_fetch_failed: path={path} status={exc.code}")
            raise UpstreamFailure(failure, details=details) from exc
        except (URLError, TimeoutError, json.JSONDecodeError) as exc:
            logger.error(f"stock_fetch_failed: path={path} error={exc}")
            raise UpstreamFailure(failure, details=str(exc)) from exc

        if not isinstance(payload, dict):
            raise UpstreamFailure(failure, details="Unexpected provider response")
        return payload
