"""Prices reported by the token registry's price feeds."""
import logging

from ..calculations import format_price
from ..contracts.registry import TokenRegistry

logger = logging.getLogger(__name__)


class RegistryPriceOracle:
    """USD prices (scaled by 1e18) for whitelisted tokens, keyed by lowercase address."""

    def __init__(self, registry: TokenRegistry) -> None:
        self._registry = registry

    async def fetch_prices(self, tokens: list[str] | None = None) -> dict[str, int]:
        """Fetch current prices from the registry.

        Args:
            tokens: Optional token addresses to keep. If None, returns every
                    whitelisted token.
        """
        prices: dict[str, int] = {}
        wanted = {t.lower() for t in tokens} if tokens is not None else None

        try:
            infos = await self._registry.tokens_info()
        except Exception as e:
            logger.error("Error fetching prices from registry: %s", e)
            return prices

        for info in infos:
            address = info.address.lower()
            if wanted is not None and address not in wanted:
                continue
            prices[address] = info.price

        logger.info("Fetched prices for %d token(s)", len(prices))
        for info in infos:
            if info.address.lower() in prices:
                logger.debug("  %s: %s", info.symbol, format_price(info.price))
        return prices
