"""Polling helpers that wait for a transaction, or its effect, to land."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from ..errors import ConfirmationTimeout, TransactionReverted
from ..interfaces.chain import ChainClient
from ..models import ContractEvent, TransactionReceipt

logger = logging.getLogger(__name__)

EventSource = Callable[[], Awaitable[list[ContractEvent]]]
AmountSource = Callable[[], Awaitable[int]]


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return a.lower() == b.lower()
    return a == b


def _attempts(timeout: float, interval: float) -> int:
    if interval <= 0:
        raise ValueError(f"Polling interval must be positive, got {interval}")
    return max(1, int(timeout / interval))


async def wait_for_receipt(
    client: ChainClient,
    tx_hash: str,
    timeout: float = 120.0,
    interval: float = 2.0,
) -> TransactionReceipt:
    """Poll until ``tx_hash`` is mined.

    Raises:
        TransactionReverted: the receipt reports status 0.
        ConfirmationTimeout: still pending after ``timeout`` seconds.
    """
    attempts = _attempts(timeout, interval)
    for attempt in range(attempts):
        try:
            receipt = await client.get_transaction_receipt(tx_hash)
        except Exception as e:
            logger.warning("Receipt lookup for %s failed: %s", tx_hash, e)
            receipt = None

        if receipt is not None:
            if not receipt.succeeded:
                raise TransactionReverted(tx_hash)
            logger.info("Transaction %s confirmed in block %d", tx_hash, receipt.block_number)
            return receipt

        if attempt < attempts - 1:
            await asyncio.sleep(interval)

    raise ConfirmationTimeout(
        f"Transaction {tx_hash} not confirmed after {timeout:g} seconds"
    )


async def wait_for_event(
    fetch: EventSource,
    tx_hash: str,
    attempts: int = 5,
    interval: float = 2.0,
    match: dict[str, Any] | None = None,
) -> ContractEvent | None:
    """Re-query ``fetch`` until it yields an event from ``tx_hash``.

    ``match`` optionally restricts the event arguments, e.g. ``{"user": addr}``.
    Returns None when no such event shows up within ``attempts`` tries.
    """
    for attempt in range(attempts):
        try:
            events = await fetch()
        except Exception as e:
            logger.warning("Event lookup attempt %d failed: %s", attempt + 1, e)
            events = []

        for event in events:
            if not _same(event.transaction_hash, tx_hash):
                continue
            if match and not all(_same(event.args.get(k), v) for k, v in match.items()):
                continue
            return event

        if attempt < attempts - 1:
            await asyncio.sleep(interval)

    logger.warning("No matching event for %s after %d attempts", tx_hash, attempts)
    return None


async def wait_for_deposit(
    read: AmountSource,
    expected: int,
    timeout: float = 10.0,
    interval: float = 1.0,
) -> int:
    """Poll ``read`` until it reports at least ``expected``; returns the amount.

    Raises:
        ConfirmationTimeout: the amount did not reach ``expected`` in time.
    """
    attempts = _attempts(timeout, interval)
    for attempt in range(attempts):
        try:
            amount = await read()
            if amount >= expected:
                return amount
            logger.debug("Deposit %d/%d, waiting...", amount, expected)
        except Exception as e:
            logger.warning("Error checking deposit: %s", e)

        if attempt < attempts - 1:
            await asyncio.sleep(interval)

    raise ConfirmationTimeout(
        "Deposit transaction took too long to confirm. Please try again."
    )
