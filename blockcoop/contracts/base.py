"""Bound contract: reads through ``eth_call``, writes through the wallet."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from eth_utils import to_checksum_address

from ..errors import TransactionError
from ..interfaces.chain import ChainClient
from ..wallet import Wallet
from .abi import ContractMethod

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def parse_method(signature: str) -> ContractMethod:
    return ContractMethod.parse(signature)


class Contract:
    """A deployed contract at ``address``."""

    def __init__(
        self, address: str, client: ChainClient, wallet: Wallet | None = None
    ) -> None:
        self.address = to_checksum_address(address)
        self._client = client
        self._wallet = wallet

    async def read(self, signature: str, *args: Any) -> Any:
        """Call a view function and decode its result."""
        method = parse_method(signature)
        result = await self._client.call(self.address, method.encode_call(*args))
        return method.decode_result(result)

    async def write(self, signature: str, *args: Any) -> str:
        """Submit a state-changing call; returns the transaction hash."""
        if self._wallet is None:
            raise TransactionError("No wallet connected")
        method = parse_method(signature)
        logger.debug("%s.%s%r", self.address, method.name, args)
        return await self._wallet.send_transaction(
            self.address, method.encode_call(*args)
        )
