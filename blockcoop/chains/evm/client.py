"""EVM JSON-RPC client with fallback support."""
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import ChainConfig
from ...contracts.abi import decode_quantity
from ...errors import RpcError
from ...models import TransactionReceipt

logger = logging.getLogger(__name__)


class EvmClient:
    """EVM RPC client with automatic endpoint fallback."""

    def __init__(self, config: ChainConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.chain_id = config.chain_id
        self.current_rpc_index = 0
        self._request_id = 0

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

            # JSON-RPC errors are final; only transport failures fall back.
            if "error" in result:
                error = result["error"]
                message = error.get("message", error) if isinstance(error, dict) else error
                raise RpcError(f"RPC error: {message}")

            if rpc_index != self.current_rpc_index:
                logger.info("Switched to RPC endpoint: %s", rpc_url)
                self.current_rpc_index = rpc_index

            return result.get("result")

        raise RpcError(f"All RPC endpoints failed. Last error: {last_error}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        """``eth_call`` against a contract; returns hex return data."""
        return await self.rpc_call("eth_call", [{"to": to, "data": data}, block])

    async def get_block_number(self) -> int:
        return decode_quantity(await self.rpc_call("eth_blockNumber", []))

    async def get_chain_id(self) -> int:
        return decode_quantity(await self.rpc_call("eth_chainId", []))

    async def get_logs(
        self,
        address: str,
        topics: list[Any],
        from_block: int,
        to_block: int | str = "latest",
    ) -> list[dict[str, Any]]:
        """Get raw logs emitted by ``address``."""
        params = {
            "address": address,
            "topics": topics,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block) if isinstance(to_block, int) else to_block,
        }
        return await self.rpc_call("eth_getLogs", [params]) or []

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def get_transaction_count(self, address: str) -> int:
        return decode_quantity(
            await self.rpc_call("eth_getTransactionCount", [address, "pending"])
        )

    async def get_gas_price(self) -> int:
        return decode_quantity(await self.rpc_call("eth_gasPrice", []))

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        return decode_quantity(await self.rpc_call("eth_estimateGas", [tx]))

    async def send_raw_transaction(self, raw_tx: str) -> str:
        """Broadcast a signed transaction; returns its hash."""
        return await self.rpc_call("eth_sendRawTransaction", [raw_tx])

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        """Receipt for ``tx_hash`` or None while the transaction is pending."""
        result = await self.rpc_call("eth_getTransactionReceipt", [tx_hash])
        if not result:
            return None
        return TransactionReceipt(
            transaction_hash=result.get("transactionHash", tx_hash),
            status=decode_quantity(result.get("status")),
            block_number=decode_quantity(result.get("blockNumber")),
            gas_used=decode_quantity(result.get("gasUsed")),
        )
