from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

NETWORK_ERROR = "NETWORK ERROR"


class Quote(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price: str | None = None
    change_percent: str | None = Field(default=None, alias="changePercent")
    error: str | None = None

    @field_validator("price", "change_percent", "error", mode="before")
    @classmethod
    def coerce_to_str(cls, value):
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, bool):
            raise ValueError("boolean is not a quote value")
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @classmethod
    def from_body(cls, payload) -> "Quote":
        """Parse a `/api/market` body; a body with neither price nor error is rejected."""
        quote = cls.model_validate(payload)
        if quote.price is None and quote.error is None:
            raise ValueError("quote body has neither price nor error")
        return quote

    @classmethod
    def network_error(cls) -> "Quote":
        return cls(price=None, error=NETWORK_ERROR)

    def to_body(self) -> dict:
        return self.model_dump(by_alias=True)


class QuoteSnapshot(BaseModel):
    symbol: str
    price: float
    change_pct: float
    source: str
    ts: int

    def to_body(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": f"{self.price:.2f}",
            "changePercent": f"{self.change_pct:+.2f}%",
        }


class SyncStatus(str, Enum):
    READY = "Ready"
    SYNCING = "Syncing"
    UPDATED = "Updated"
