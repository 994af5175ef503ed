"""Protocol interfaces for the BlockCoop client."""
from .chain import ChainClient
from .notifier import Notifier
from .price_oracle import PriceOracle

__all__ = ["ChainClient", "Notifier", "PriceOracle"]
