from __future__ import annotations

from typing import Any, Dict, Optional

import requests


class MarketApiClient:
    """HTTP client for the `/api/market` quote endpoint.

    Error bodies are returned as-is so the caller can show the endpoint's
    own message; only transport failures and non-JSON bodies raise.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[Any] = None,
        timeout: float = 10,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests
        self.timeout = timeout

    def get_quote(self, symbol: str) -> Dict[str, Any]:
        response = self.session.get(
            f"{self.base_url}/api/market",
            params={"symbol": symbol},
            timeout=self.timeout,
        )
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("quote response must be a JSON object")
        return payload
