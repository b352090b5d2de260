from __future__ import annotations

from market_tracker.schemas.quote import Quote


class QuoteCache:
    """Latest quote per symbol. Last write wins; no history."""

    def __init__(self) -> None:
        self._rows: dict[str, Quote] = {}

    def upsert(self, symbol: str, quote: Quote) -> None:
        self._rows[symbol] = quote

    def get(self, symbol: str) -> Quote | None:
        return self._rows.get(symbol)

    def remove(self, symbol: str) -> bool:
        return self._rows.pop(symbol, None) is not None

    def prune(self, symbols: list[str]) -> int:
        keep = set(symbols)
        dropped = [s for s in self._rows if s not in keep]
        for s in dropped:
            self._rows.pop(s, None)
        return len(dropped)

    def symbols(self) -> list[str]:
        return list(self._rows)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._rows

    def __len__(self) -> int:
        return len(self._rows)
