from __future__ import annotations

import threading
import time
from typing import Callable

from market_tracker.errors import (
    MarketQuoteError,
    MissingApiKeyError,
    SymbolNotFoundError,
    SymbolRequiredError,
    UpstreamError,
    UpstreamRateLimitError,
)
from market_tracker.schemas.quote import QuoteSnapshot
from market_tracker.services.watchlist_store import normalize_symbol


class MarketQuoteService:
    """TTL-cached quote proxy over the upstream REST client with 429 cooldown."""

    def __init__(
        self,
        *,
        rest_client,
        cache_ttl_sec: int = 1800,
        rate_limit_cooldown_sec: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.rest_client = rest_client
        self.cache_ttl_sec = cache_ttl_sec
        self.rate_limit_cooldown_sec = rate_limit_cooldown_sec
        self._clock = clock
        self._snapshots: dict[str, QuoteSnapshot] = {}
        self._cooldown_until: dict[str, int] = {}
        # route threadpool and scheduler worker threads share this state
        self._lock = threading.Lock()

        self.cache_hits = 0
        self.upstream_fetches = 0
        self.rate_limited = 0
        self.stale_served = 0
        self.upstream_errors = 0

    def _is_fresh(self, snapshot: QuoteSnapshot, now: int) -> bool:
        age = max(now - snapshot.ts, 0)
        return age < self.cache_ttl_sec

    def _prune_expired_cooldowns(self, now: int) -> None:
        expired = [s for s, until in self._cooldown_until.items() if until <= now]
        for s in expired:
            self._cooldown_until.pop(s, None)

    def _is_symbol_cooldown(self, symbol: str, now: int) -> bool:
        until = self._cooldown_until.get(symbol, 0)
        return now < until

    def _mark_symbol_cooldown(self, symbol: str, now: int) -> None:
        self._cooldown_until[symbol] = now + self.rate_limit_cooldown_sec

    @staticmethod
    def _status_code_from_error(exc: Exception) -> int | None:
        response = getattr(exc, "response", None)
        code = getattr(response, "status_code", None)
        if isinstance(code, int):
            return code
        return None

    def _serve_stale_or_raise(self, symbol: str) -> QuoteSnapshot:
        # caller holds self._lock
        cached = self._snapshots.get(symbol)
        if cached is not None:
            self.stale_served += 1
            return cached
        raise UpstreamRateLimitError()

    def _fetch_upstream(self, symbol: str, now: int) -> QuoteSnapshot:
        # the upstream call runs without the lock held
        try:
            payload = self.rest_client.get_quote(symbol)
        except MarketQuoteError:
            raise
        except Exception as exc:
            code = self._status_code_from_error(exc)
            if code == 429:
                print(
                    f"[MARKET][upstream_rate_limited] symbol={symbol} "
                    f"cooldown_sec={self.rate_limit_cooldown_sec}",
                    flush=True,
                )
                with self._lock:
                    self.rate_limited += 1
                    self._mark_symbol_cooldown(symbol, now)
                    return self._serve_stale_or_raise(symbol)
            if code == 404:
                raise SymbolNotFoundError() from exc
            with self._lock:
                self.upstream_errors += 1
            print(f"[MARKET][upstream_error] symbol={symbol} error={exc!r}", flush=True)
            raise UpstreamError() from exc

        try:
            snapshot = QuoteSnapshot(
                symbol=symbol,
                price=float(payload["price"]),
                change_pct=float(payload.get("change_pct", 0.0)),
                source=str(payload.get("source", "polygon")),
                ts=now,
            )
        except (KeyError, TypeError, ValueError) as exc:
            with self._lock:
                self.upstream_errors += 1
            raise UpstreamError() from exc

        with self._lock:
            self._snapshots[symbol] = snapshot
        return snapshot

    def get_quote(self, symbol: str) -> QuoteSnapshot:
        value = normalize_symbol(symbol)
        if not value:
            raise SymbolRequiredError()

        now = int(self._clock())
        with self._lock:
            self._prune_expired_cooldowns(now)

            cached = self._snapshots.get(value)
            if cached is not None and self._is_fresh(cached, now):
                self.cache_hits += 1
                return cached

            if self._is_symbol_cooldown(value, now):
                return self._serve_stale_or_raise(value)

            if self.rest_client is None:
                raise MissingApiKeyError()
            self.upstream_fetches += 1

        return self._fetch_upstream(value, now)

    def quote_body(self, symbol: str) -> tuple[int, dict]:
        """Status code and JSON body for the `/api/market` endpoint."""
        try:
            return 200, self.get_quote(symbol).to_body()
        except MarketQuoteError as exc:
            return exc.status_code, exc.to_body()

    def metrics(self) -> dict[str, int]:
        with self._lock:
            return {
                "quote_cache_size": len(self._snapshots),
                "quote_cache_hits": self.cache_hits,
                "upstream_fetches": self.upstream_fetches,
                "upstream_rate_limited": self.rate_limited,
                "upstream_errors": self.upstream_errors,
                "stale_served": self.stale_served,
                "symbols_in_cooldown": len(self._cooldown_until),
            }
