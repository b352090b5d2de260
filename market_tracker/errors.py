class MarketQuoteError(Exception):
    status_code = 500
    message = "LTP FETCH FAILED"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_body(self) -> dict:
        return {"error": self.message}


class SymbolRequiredError(MarketQuoteError):
    status_code = 400
    message = "SYMBOL REQUIRED"


class SymbolNotFoundError(MarketQuoteError):
    status_code = 404
    message = "SYMBOL NOT FOUND"


class UpstreamRateLimitError(MarketQuoteError):
    status_code = 429
    message = "RATE LIMITED"


class MissingApiKeyError(MarketQuoteError):
    status_code = 500
    message = "API KEY MISSING"


class UpstreamError(MarketQuoteError):
    status_code = 502
    message = "LTP FETCH FAILED"
