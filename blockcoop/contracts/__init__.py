"""Contract bindings for the BlockCoop SACCO platform."""
from .abi import ContractEventSignature, ContractMethod
from .base import Contract
from .erc20 import Erc20Token
from .events import EventFeed
from .loan_manager import LoanManager
from .registry import TokenRegistry

__all__ = [
    "Contract",
    "ContractEventSignature",
    "ContractMethod",
    "Erc20Token",
    "EventFeed",
    "LoanManager",
    "TokenRegistry",
]
