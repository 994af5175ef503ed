"""Registry event feed built on ``eth_getLogs``."""
from __future__ import annotations

import logging
from typing import Any

from eth_utils import to_checksum_address

from ..interfaces.chain import ChainClient
from ..models import ContractEvent
from .abi import ContractEventSignature, decode_quantity

logger = logging.getLogger(__name__)

FUND_MANAGER_ADDED = "event FundManagerAdded(address indexed fundManager)"
FUND_MANAGER_REMOVED = "event FundManagerRemoved(address indexed fundManager)"
TOKEN_WHITELISTED = (
    "event TokenWhitelisted(address indexed tokenAddress, address indexed priceFeed)"
)
DEPOSIT = "event Deposit(address indexed user, address indexed tokenAddress, uint256 amount)"
WITHDRAW = "event Withdraw(address indexed user, address indexed tokenAddress, uint256 amount)"

REGISTRY_EVENTS: tuple[str, ...] = (
    FUND_MANAGER_ADDED,
    FUND_MANAGER_REMOVED,
    TOKEN_WHITELISTED,
    DEPOSIT,
    WITHDRAW,
)


class EventFeed:
    """Decoded events emitted by one contract."""

    def __init__(
        self,
        address: str,
        client: ChainClient,
        signatures: tuple[str, ...] = REGISTRY_EVENTS,
    ) -> None:
        self.address = to_checksum_address(address)
        self._client = client
        self._events: dict[str, ContractEventSignature] = {}
        for signature in signatures:
            event = ContractEventSignature.parse(signature)
            self._events[event.topic] = event

    @property
    def event_names(self) -> list[str]:
        return [e.name for e in self._events.values()]

    def _topics_for(self, names: list[str] | None) -> list[str]:
        if names is None:
            return list(self._events)
        unknown = set(names) - set(self.event_names)
        if unknown:
            raise ValueError(f"Unknown event(s): {', '.join(sorted(unknown))}")
        return [topic for topic, e in self._events.items() if e.name in names]

    def decode(self, log: dict[str, Any]) -> ContractEvent | None:
        """Decode a raw log, or None when its topic is not one we track."""
        topics = log.get("topics") or []
        if not topics:
            return None
        event = self._events.get(topics[0].lower())
        if event is None:
            return None
        return ContractEvent(
            name=event.name,
            transaction_hash=log.get("transactionHash", ""),
            block_number=decode_quantity(log.get("blockNumber")),
            args=event.decode_log(log),
        )

    async def fetch(
        self,
        from_block: int,
        to_block: int | str = "latest",
        names: list[str] | None = None,
    ) -> list[ContractEvent]:
        """Events in ``[from_block, to_block]``, oldest first."""
        logs = await self._client.get_logs(
            self.address, [self._topics_for(names)], from_block, to_block
        )
        events: list[ContractEvent] = []
        for log in logs:
            try:
                event = self.decode(log)
            except Exception as e:
                logger.warning(
                    "Skipping undecodable log in tx %s: %s",
                    log.get("transactionHash"),
                    e,
                )
                continue
            if event is not None:
                events.append(event)
        return events

    async def recent(
        self, lookback_blocks: int, names: list[str] | None = None
    ) -> list[ContractEvent]:
        """Events from the last ``lookback_blocks`` blocks."""
        latest = await self._client.get_block_number()
        return await self.fetch(max(0, latest - lookback_blocks), latest, names)
