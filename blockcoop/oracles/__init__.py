"""Price oracle modules."""
from .registry import RegistryPriceOracle

__all__ = ["RegistryPriceOracle"]
