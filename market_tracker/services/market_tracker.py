from __future__ import annotations

from market_tracker.schemas.watchlist import WatchlistSnapshot
from market_tracker.services.quote_cache import QuoteCache
from market_tracker.services.sync_scheduler import SyncScheduler
from market_tracker.services.watchlist_store import WatchlistStore


class MarketTracker:
    """Binds watchlist, quote cache and scheduler for the UI."""

    def __init__(
        self,
        *,
        store: WatchlistStore,
        quote_cache: QuoteCache,
        scheduler: SyncScheduler,
    ) -> None:
        self.store = store
        self.quote_cache = quote_cache
        self.scheduler = scheduler

    def load(self) -> list[str]:
        symbols = self.store.load()
        self.quote_cache.prune(symbols)
        self.scheduler.on_watchlist_changed()
        return symbols

    def add(self, symbol: object) -> str | None:
        added = self.store.add(symbol)
        if added:
            # fill the new row now instead of waiting for the next full pass
            self.scheduler.schedule_one(added)
        return added

    def remove(self, symbol: object) -> bool:
        removed = self.store.remove(symbol)
        self.scheduler.on_watchlist_changed()
        return removed

    def snapshot(self) -> WatchlistSnapshot:
        symbols = self.store.symbols()
        quotes: dict[str, dict | None] = {}
        for symbol in symbols:
            quote = self.quote_cache.get(symbol)
            quotes[symbol] = quote.to_body() if quote is not None else None
        return WatchlistSnapshot(
            status=self.scheduler.status,
            symbols=symbols,
            quotes=quotes,
        )
