"""Price oracle protocol: price feed abstraction."""
from typing import Protocol


class PriceOracle(Protocol):
    """Abstract interface for fetching 1e18-scaled USD prices by token address."""

    async def fetch_prices(self, tokens: list[str] | None = None) -> dict[str, int]: ...
