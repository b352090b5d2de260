from pydantic import BaseModel

from market_tracker.schemas.quote import SyncStatus


class WatchlistAddRequest(BaseModel):
    symbol: str = ""


class WatchlistSnapshot(BaseModel):
    status: SyncStatus
    symbols: list[str]
    quotes: dict[str, dict | None]
