"""BlockCoop SACCO client: deposits, loans and liquidity pools on Celo."""

__version__ = "0.1.0"
