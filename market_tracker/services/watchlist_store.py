from __future__ import annotations

import json
import threading

from market_tracker.services.quote_cache import QuoteCache

DEFAULT_STORAGE_KEY = "alpha-watchlist"


def normalize_symbol(symbol: object) -> str:
    if symbol is None:
        return ""
    return str(symbol).strip().upper()


class WatchlistStore:
    """Ordered, duplicate-free list of symbols persisted after every change."""

    def __init__(
        self,
        storage,
        *,
        key: str = DEFAULT_STORAGE_KEY,
        quote_cache: QuoteCache | None = None,
    ) -> None:
        self.storage = storage
        self.key = key
        self.quote_cache = quote_cache
        self._symbols: list[str] = []
        # guards the in-memory list; held only briefly, never across storage I/O
        self.lock = threading.RLock()
        self._persist_lock = threading.Lock()

    def _decode(self, raw: str | None) -> list[str]:
        if raw is None:
            return []
        decoded = json.loads(raw)
        if not isinstance(decoded, list):
            raise ValueError("persisted watchlist must be a JSON array")

        out: list[str] = []
        for item in decoded:
            if not isinstance(item, str):
                raise ValueError(f"persisted symbol must be a string: {item!r}")
            symbol = normalize_symbol(item)
            if symbol and symbol not in out:
                out.append(symbol)
        return out

    def load(self) -> list[str]:
        try:
            symbols = self._decode(self.storage.get_item(self.key))
        except Exception as exc:
            print(f"[STORE][load_failed] key={self.key} error={exc}", flush=True)
            symbols = []

        with self.lock:
            self._symbols = symbols
        print(f"[STORE][load] key={self.key} symbols={len(symbols)}", flush=True)
        return self.symbols()

    def _persist(self) -> None:
        # the list is read under the persist lock so the last writer stores the latest state
        with self._persist_lock:
            try:
                self.storage.set_item(self.key, json.dumps(self.symbols()))
            except Exception as exc:
                # in-memory list stays authoritative for this session
                print(f"[STORE][persist_failed] key={self.key} error={exc}", flush=True)

    def symbols(self) -> list[str]:
        with self.lock:
            return list(self._symbols)

    def add(self, symbol: object) -> str | None:
        value = normalize_symbol(symbol)
        with self.lock:
            if not value or value in self._symbols:
                return None
            self._symbols.append(value)

        self._persist()
        return value

    def remove(self, symbol: object) -> bool:
        value = normalize_symbol(symbol)
        with self.lock:
            present = value in self._symbols
            if present:
                self._symbols.remove(value)
            if self.quote_cache is not None:
                self.quote_cache.remove(value)

        if present:
            self._persist()
        return present

    def __contains__(self, symbol: object) -> bool:
        with self.lock:
            return normalize_symbol(symbol) in self._symbols

    def __len__(self) -> int:
        with self.lock:
            return len(self._symbols)
