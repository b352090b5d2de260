from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from market_tracker.api.routes import router
from market_tracker.config.settings import Settings, get_settings
from market_tracker.integrations.local_storage import JsonFileStorage
from market_tracker.integrations.market_api import MarketApiClient
from market_tracker.integrations.polygon_rest import PolygonRestClient
from market_tracker.services.market_quote import MarketQuoteService
from market_tracker.services.market_tracker import MarketTracker
from market_tracker.services.quote_cache import QuoteCache
from market_tracker.services.sync_scheduler import SyncScheduler
from market_tracker.services.watchlist_store import WatchlistStore


class _InProcessQuoteClient:
    """Serves `/api/market` bodies without an HTTP round trip."""

    def __init__(self, service: MarketQuoteService) -> None:
        self.service = service

    def get_quote(self, symbol: str) -> dict:
        _, body = self.service.quote_body(symbol)
        return body


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    scheduler = app.state.sync_scheduler
    # add/remove routes run in the threadpool and hand fetches back to this loop
    scheduler.attach_loop(asyncio.get_running_loop())

    symbols = app.state.market_tracker.load()
    print(f"[APP][startup] watchlist={','.join(symbols) or '-'}", flush=True)
    if settings.MARKET_SYNC_ON_STARTUP:
        scheduler.start_periodic(settings.MARKET_SYNC_INTERVAL_SEC)

    try:
        yield
    finally:
        await scheduler.stop(timeout=1.0)
        print("[APP][shutdown]", flush=True)


def create_app(
    settings: Settings | None = None,
    *,
    storage=None,
    rest_client=None,
    quote_client=None,
    sleep_fn=None,
) -> FastAPI:
    settings = settings or get_settings()

    if rest_client is None and settings.POLYGON_API_KEY:
        rest_client = PolygonRestClient(
            api_key=settings.POLYGON_API_KEY,
            base_url=settings.POLYGON_BASE_URL,
            timeout=settings.MARKET_FETCH_TIMEOUT_SEC,
        )
    market_quote_service = MarketQuoteService(
        rest_client=rest_client,
        cache_ttl_sec=settings.MARKET_CACHE_TTL_SEC,
        rate_limit_cooldown_sec=settings.MARKET_RATE_LIMIT_COOLDOWN_SEC,
    )

    if quote_client is None:
        if settings.MARKET_API_BASE_URL:
            quote_client = MarketApiClient(
                base_url=settings.MARKET_API_BASE_URL,
                timeout=settings.MARKET_FETCH_TIMEOUT_SEC,
            )
        else:
            quote_client = _InProcessQuoteClient(market_quote_service)

    quote_cache = QuoteCache()
    store = WatchlistStore(
        storage if storage is not None else JsonFileStorage(settings.WATCHLIST_STORAGE_PATH),
        key=settings.WATCHLIST_STORAGE_KEY,
        quote_cache=quote_cache,
    )
    scheduler = SyncScheduler(
        store=store,
        quote_cache=quote_cache,
        quote_client=quote_client,
        delay_sec=settings.MARKET_SYNC_DELAY_SEC,
        sleep_fn=sleep_fn,
    )

    app = FastAPI(title="Market Tracker", version="0.1.0", lifespan=lifespan)
    app.include_router(router, prefix="/api")

    app.state.settings = settings
    app.state.market_quote_service = market_quote_service
    app.state.quote_cache = quote_cache
    app.state.sync_scheduler = scheduler
    app.state.market_tracker = MarketTracker(
        store=store,
        quote_cache=quote_cache,
        scheduler=scheduler,
    )
    return app


app = create_app()
