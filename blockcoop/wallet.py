"""Local-key wallet: builds, signs and broadcasts transactions."""
from __future__ import annotations

import logging
from typing import Any

from eth_account import Account
from eth_utils import to_checksum_address

from .config import WalletConfig
from .errors import TransactionError
from .interfaces.chain import ChainClient

logger = logging.getLogger(__name__)

GAS_BUFFER_PERCENT = 20


class Wallet:
    """Connected account. Without a private key the wallet is read-only."""

    def __init__(self, config: WalletConfig, client: ChainClient) -> None:
        self._client = client
        self._account = Account.from_key(config.private_key) if config.private_key else None
        if self._account is not None:
            self.address: str | None = self._account.address
        elif config.address:
            self.address = to_checksum_address(config.address)
        else:
            self.address = None
        self.label = config.label

    @property
    def can_sign(self) -> bool:
        return self._account is not None

    @property
    def is_connected(self) -> bool:
        return self.address is not None

    async def build_transaction(self, to: str, data: str, value: int = 0) -> dict[str, Any]:
        """Fill nonce, gas and chain id for a contract call."""
        if self.address is None:
            raise TransactionError("No wallet connected")

        call = {"from": self.address, "to": to, "data": data, "value": hex(value)}
        try:
            gas = await self._client.estimate_gas(call)
        except Exception as e:
            # Reverts surface here with the contract's reason string.
            raise TransactionError(str(e)) from e

        nonce = await self._client.get_transaction_count(self.address)
        gas_price = await self._client.get_gas_price()
        return {
            "to": to,
            "data": data,
            "value": value,
            "nonce": nonce,
            "gas": gas * (100 + GAS_BUFFER_PERCENT) // 100,
            "gasPrice": gas_price,
            "chainId": self._client.chain_id,
        }

    async def send_transaction(self, to: str, data: str, value: int = 0) -> str:
        """Sign and broadcast; returns the transaction hash."""
        if self._account is None:
            raise TransactionError("Wallet is read-only: no private key configured")

        tx = await self.build_transaction(to, data, value)
        signed = self._account.sign_transaction(tx)
        raw = "0x" + signed.raw_transaction.hex().removeprefix("0x")
        try:
            tx_hash = await self._client.send_raw_transaction(raw)
        except Exception as e:
            raise TransactionError(str(e)) from e

        logger.info("Submitted transaction %s (nonce %d)", tx_hash, tx["nonce"])
        return tx_hash
