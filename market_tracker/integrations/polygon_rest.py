from __future__ import annotations

import time
from typing import Any, Dict, Optional

import requests

from market_tracker.errors import SymbolNotFoundError


class PolygonRestClient:
    """Minimal Polygon.io snapshot client for single-ticker quotes."""

    _BASE_URL = "https://api.polygon.io"

    def __init__(
        self,
        api_key: str,
        session: Optional[Any] = None,
        base_url: Optional[str] = None,
        timeout: float = 5,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")

        self.api_key = api_key
        self.base_url = (base_url or self._BASE_URL).rstrip("/")
        self.session = session or requests
        self.timeout = timeout

    @staticmethod
    def _to_float(value: Any, default: float = 0.0) -> float:
        try:
            if value is None or value == "":
                return default
            return float(value)
        except (TypeError, ValueError):
            return default

    @staticmethod
    def _first_price(ticker: Dict[str, Any]) -> float | None:
        candidates = (
            (ticker.get("lastTrade") or {}).get("p"),
            (ticker.get("day") or {}).get("c"),
            (ticker.get("prevDay") or {}).get("c"),
        )
        for value in candidates:
            if value in (None, "", 0):
                continue
            try:
                return float(value)
            except (TypeError, ValueError):
                continue
        return None

    def get_quote(self, symbol: str) -> Dict[str, Any]:
        response = self.session.get(
            f"{self.base_url}/v2/snapshot/locale/us/markets/stocks/tickers/{symbol}",
            params={"apiKey": self.api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json()

        ticker = payload.get("ticker") if isinstance(payload, dict) else None
        if not isinstance(ticker, dict):
            raise SymbolNotFoundError()

        price = self._first_price(ticker)
        if price is None:
            raise SymbolNotFoundError()

        return {
            "symbol": str(ticker.get("ticker") or symbol),
            "price": price,
            "change_pct": self._to_float(ticker.get("todaysChangePerc")),
            "source": "polygon",
            "ts": int(time.time()),
        }
