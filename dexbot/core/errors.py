"""Exceptions raised by the market data client and the orchestrator."""


class DexbotError(Exception):
    """Base class for bot errors."""


class InvalidQuery(DexbotError, ValueError):
    """Caller input rejected before any I/O."""


class ProviderError(DexbotError):
    """Non-success response from the market data provider."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Provider error {status_code}: {message}")


class NotFound(ProviderError):
    """Provider has no record for the requested pair or token."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(404, message)


class AnalysisFailure(DexbotError):
    """Decision engine raised or returned malformed data."""

    def __init__(self, symbol: str, message: str) -> None:
        self.symbol = symbol
        self.message = message
        super().__init__(f"Analysis failed for {symbol}: {message}")
