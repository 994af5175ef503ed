"""Chain client protocol: blockchain RPC abstraction."""
from typing import Any, Protocol

from ..models import TransactionReceipt


class ChainClient(Protocol):
    """Abstract interface for EVM RPC interactions."""

    chain_id: int

    async def call(self, to: str, data: str, block: str = "latest") -> str: ...

    async def get_block_number(self) -> int: ...

    async def get_logs(
        self,
        address: str,
        topics: list[Any],
        from_block: int,
        to_block: int | str = "latest",
    ) -> list[dict[str, Any]]: ...

    async def get_transaction_count(self, address: str) -> int: ...

    async def get_gas_price(self) -> int: ...

    async def estimate_gas(self, tx: dict[str, Any]) -> int: ...

    async def send_raw_transaction(self, raw_tx: str) -> str: ...

    async def get_transaction_receipt(
        self, tx_hash: str
    ) -> TransactionReceipt | None: ...
