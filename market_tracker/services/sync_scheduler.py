from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Coroutine

from market_tracker.schemas.quote import Quote, SyncStatus
from market_tracker.services.quote_cache import QuoteCache
from market_tracker.services.watchlist_store import WatchlistStore


class SyncScheduler:
    """Sequential quote sync over the watchlist with a fixed delay between fetches.

    At most one full sync runs at a time; a second `sync_all()` while one is
    in flight is dropped, not queued. Individual fetches never overlap, so a
    `sync_one()` issued mid-sync waits for the in-flight fetch.

    `stop()` is sticky: syncs that start afterwards end before their first
    fetch until `start_periodic()` is called again.
    """

    def __init__(
        self,
        *,
        store: WatchlistStore,
        quote_cache: QuoteCache,
        quote_client,
        delay_sec: float = 13.0,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.quote_cache = quote_cache
        self.quote_client = quote_client
        self.delay_sec = delay_sec
        self._sleep = sleep_fn or asyncio.sleep
        self._clock = clock

        self.status = SyncStatus.READY
        self._syncing = False
        self._single_in_flight = 0
        self._cancel_requested = False
        self._fetch_lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()
        self._periodic_task: asyncio.Task | None = None

        self.syncs_started = 0
        self.syncs_completed = 0
        self.syncs_skipped = 0
        self.syncs_cancelled = 0
        self.fetches = 0
        self.fetch_errors = 0
        self.quote_errors = 0
        self.discarded = 0
        self.last_sync_started_at: int | None = None
        self.last_sync_finished_at: int | None = None

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def _settled_status(self) -> SyncStatus:
        return SyncStatus.UPDATED if len(self.store) else SyncStatus.READY

    async def _fetch(self, symbol: str) -> Quote:
        self.fetches += 1
        try:
            payload = await asyncio.to_thread(self.quote_client.get_quote, symbol)
            quote = Quote.from_body(payload)
        except Exception as exc:
            self.fetch_errors += 1
            print(f"[SYNC][fetch_error] symbol={symbol} error={exc!r}", flush=True)
            return Quote.network_error()

        if quote.error:
            self.quote_errors += 1
            print(f"[SYNC][quote_error] symbol={symbol} error={quote.error}", flush=True)
        return quote

    async def _sync_symbol(self, symbol: str) -> Quote | None:
        async with self._fetch_lock:
            quote = await self._fetch(symbol)

        with self.store.lock:
            if symbol not in self.store:
                # removed while the fetch was in flight
                self.discarded += 1
                print(f"[SYNC][result_discarded] symbol={symbol}", flush=True)
                return None
            self.quote_cache.upsert(symbol, quote)
        return quote

    async def sync_one(self, symbol: str) -> Quote | None:
        if self._syncing:
            return await self._sync_symbol(symbol)

        # outside a full pass this fetch drives the status on its own
        self._single_in_flight += 1
        self.status = SyncStatus.SYNCING
        try:
            return await self._sync_symbol(symbol)
        finally:
            self._single_in_flight -= 1
            if not self._syncing and not self._single_in_flight:
                self.status = self._settled_status()

    async def sync_all(self) -> bool:
        if self._syncing:
            self.syncs_skipped += 1
            print("[SYNC][sync_skipped] reason=in_flight", flush=True)
            return False

        symbols = self.store.symbols()
        if not symbols:
            self.status = SyncStatus.READY
            return False

        self._syncing = True
        self.status = SyncStatus.SYNCING
        self.syncs_started += 1
        self.last_sync_started_at = int(self._clock())
        print(f"[SYNC][sync_start] symbols={len(symbols)} delay_sec={self.delay_sec}", flush=True)

        completed = False
        try:
            for index, symbol in enumerate(symbols):
                if self._cancel_requested:
                    break
                await self._sync_symbol(symbol)
                if index < len(symbols) - 1:
                    await self._sleep(self.delay_sec)
            else:
                completed = True
        finally:
            self.last_sync_finished_at = int(self._clock())
            if completed:
                self.status = self._settled_status()
                self.syncs_completed += 1
                print(f"[SYNC][sync_done] symbols={len(symbols)} status={self.status.value}", flush=True)
            else:
                self.status = SyncStatus.READY
                self.syncs_cancelled += 1
                print("[SYNC][sync_cancelled]", flush=True)
            self._syncing = False

        return completed

    def on_watchlist_changed(self) -> None:
        if not len(self.store):
            self.status = SyncStatus.READY

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Loop that receives work scheduled from threads without a running loop."""
        self._loop = loop

    def _create_task(self, coro: Coroutine, name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _spawn(self, make_coro: Callable[[], Coroutine], *, name: str) -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            self._create_task(make_coro(), name)
            return True

        loop = self._loop
        if loop is None or loop.is_closed():
            print(f"[SYNC][schedule_skipped] task={name} reason=no_running_loop", flush=True)
            return False

        coro = make_coro()
        try:
            loop.call_soon_threadsafe(self._create_task, coro, name)
        except RuntimeError:
            coro.close()
            print(f"[SYNC][schedule_skipped] task={name} reason=loop_closed", flush=True)
            return False
        return True

    def trigger(self) -> bool:
        """Schedule a full sync in the background. Returns False if one is already running."""
        if self._syncing:
            self.syncs_skipped += 1
            print("[SYNC][trigger_skipped] reason=in_flight", flush=True)
            return False
        return self._spawn(self.sync_all, name="market-sync-all")

    def schedule_one(self, symbol: str) -> bool:
        return self._spawn(lambda: self.sync_one(symbol), name=f"market-sync-{symbol}")

    async def _run_periodic(self, interval_sec: float) -> None:
        print(f"[SYNC][timer_start] interval_sec={interval_sec}", flush=True)
        while not self._cancel_requested:
            self.trigger()
            await asyncio.sleep(interval_sec)

    def start_periodic(self, interval_sec: float) -> None:
        if self._periodic_task is not None and not self._periodic_task.done():
            return
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._cancel_requested = False
        self._periodic_task = loop.create_task(
            self._run_periodic(interval_sec),
            name="market-sync-timer",
        )

    async def stop(self, timeout: float = 1.0) -> None:
        self._cancel_requested = True

        if self._periodic_task is not None:
            self._periodic_task.cancel()
            await asyncio.gather(self._periodic_task, return_exceptions=True)
            self._periodic_task = None

        pending = [t for t in self._tasks if not t.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)

        print(f"[SYNC][timer_stop] pending_tasks={len(pending)}", flush=True)

    def metrics(self) -> dict:
        return {
            "status": self.status.value,
            "syncing": self._syncing,
            "delay_sec": self.delay_sec,
            "periodic_running": self._periodic_task is not None and not self._periodic_task.done(),
            "cached_symbols": len(self.quote_cache),
            "syncs_started": self.syncs_started,
            "syncs_completed": self.syncs_completed,
            "syncs_skipped": self.syncs_skipped,
            "syncs_cancelled": self.syncs_cancelled,
            "fetches": self.fetches,
            "fetch_errors": self.fetch_errors,
            "quote_errors": self.quote_errors,
            "results_discarded": self.discarded,
            "last_sync_started_at": self.last_sync_started_at,
            "last_sync_finished_at": self.last_sync_finished_at,
        }
