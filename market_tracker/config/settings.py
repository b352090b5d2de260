import os
from functools import lru_cache

from pydantic import BaseModel, Field


class Settings(BaseModel):
    POLYGON_API_KEY: str | None = None
    POLYGON_BASE_URL: str = "https://api.polygon.io"
    MARKET_API_BASE_URL: str | None = None
    MARKET_SYNC_DELAY_SEC: float = Field(default=13.0, ge=0)
    MARKET_SYNC_INTERVAL_SEC: float = Field(default=60.0, gt=0)
    MARKET_SYNC_ON_STARTUP: bool = True
    MARKET_FETCH_TIMEOUT_SEC: float = Field(default=10.0, gt=0)
    MARKET_CACHE_TTL_SEC: int = Field(default=1800, ge=0)
    MARKET_RATE_LIMIT_COOLDOWN_SEC: int = Field(default=60, ge=0)
    WATCHLIST_STORAGE_PATH: str = "data/local_storage.json"
    WATCHLIST_STORAGE_KEY: str = "alpha-watchlist"

    @classmethod
    def from_env(cls) -> "Settings":
        # unset variables fall back to field defaults
        raw = {name: os.getenv(name) for name in cls.model_fields}
        values = {name: value.strip() for name, value in raw.items() if value is not None}
        for optional in ("POLYGON_API_KEY", "MARKET_API_BASE_URL"):
            if values.get(optional) == "":
                values.pop(optional)

        return cls.model_validate(values)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
