"""Unit tests for receipt, event and deposit polling."""
from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from blockcoop.errors import ConfirmationTimeout, RpcError, TransactionReverted
from blockcoop.models import ContractEvent, TransactionReceipt
from blockcoop.services.confirmation import (
    wait_for_deposit,
    wait_for_event,
    wait_for_receipt,
)

TX = "0x" + "ab" * 32
USER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def _event(tx_hash: str = TX, user: str = USER.lower()) -> ContractEvent:
    return ContractEvent(
        name="Deposit",
        transaction_hash=tx_hash,
        block_number=10,
        args={"user": user, "amount": 5},
    )


class TestWaitForReceipt:
    @pytest.mark.asyncio
    async def test_confirmed(self) -> None:
        client = AsyncMock()
        client.get_transaction_receipt = AsyncMock(
            side_effect=[None, TransactionReceipt(TX, status=1, block_number=7)]
        )
        with patch("blockcoop.services.confirmation.asyncio.sleep", new=AsyncMock()):
            receipt = await wait_for_receipt(client, TX, timeout=10, interval=1)
        assert receipt.block_number == 7
        assert client.get_transaction_receipt.await_count == 2

    @pytest.mark.asyncio
    async def test_reverted(self) -> None:
        client = AsyncMock()
        client.get_transaction_receipt = AsyncMock(
            return_value=TransactionReceipt(TX, status=0, block_number=7)
        )
        with pytest.raises(TransactionReverted):
            await wait_for_receipt(client, TX)

    @pytest.mark.asyncio
    async def test_timeout_after_configured_attempts(self) -> None:
        client = AsyncMock()
        client.get_transaction_receipt = AsyncMock(return_value=None)
        sleep = AsyncMock()
        with patch("blockcoop.services.confirmation.asyncio.sleep", new=sleep):
            with pytest.raises(ConfirmationTimeout, match="not confirmed"):
                await wait_for_receipt(client, TX, timeout=6, interval=2)
        assert client.get_transaction_receipt.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_lookup_errors_keep_polling(self) -> None:
        client = AsyncMock()
        client.get_transaction_receipt = AsyncMock(
            side_effect=[RpcError("down"), TransactionReceipt(TX, status=1, block_number=1)]
        )
        with patch("blockcoop.services.confirmation.asyncio.sleep", new=AsyncMock()):
            receipt = await wait_for_receipt(client, TX, timeout=4, interval=1)
        assert receipt.succeeded

    @pytest.mark.asyncio
    async def test_zero_interval_rejected(self) -> None:
        client = AsyncMock()
        with pytest.raises(ValueError, match="interval must be positive"):
            await wait_for_receipt(client, TX, timeout=10, interval=0)
        client.get_transaction_receipt.assert_not_awaited()


class TestWaitForEvent:
    @pytest.mark.asyncio
    async def test_found_on_later_attempt(self) -> None:
        fetch = AsyncMock(side_effect=[[], [_event("0x01")], [_event()]])
        sleep = AsyncMock()
        with patch("blockcoop.services.confirmation.asyncio.sleep", new=sleep):
            event = await wait_for_event(fetch, TX)
        assert event is not None
        assert event.transaction_hash == TX
        assert fetch.await_count == 3
        sleep.assert_awaited_with(2.0)

    @pytest.mark.asyncio
    async def test_hash_match_is_case_insensitive(self) -> None:
        fetch = AsyncMock(return_value=[_event(TX.upper().replace("0X", "0x"))])
        assert await wait_for_event(fetch, TX) is not None

    @pytest.mark.asyncio
    async def test_match_filters_arguments(self) -> None:
        other = _event(user="0x" + "99" * 20)
        fetch = AsyncMock(return_value=[other])
        with patch("blockcoop.services.confirmation.asyncio.sleep", new=AsyncMock()):
            result = await wait_for_event(fetch, TX, attempts=2, match={"user": USER})
        assert result is None

    @pytest.mark.asyncio
    async def test_match_compares_addresses_case_insensitively(self) -> None:
        fetch = AsyncMock(return_value=[_event()])
        assert await wait_for_event(fetch, TX, match={"user": USER}) is not None

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self) -> None:
        fetch = AsyncMock(return_value=[])
        sleep = AsyncMock()
        with patch("blockcoop.services.confirmation.asyncio.sleep", new=sleep):
            assert await wait_for_event(fetch, TX, attempts=5, interval=2.0) is None
        assert fetch.await_count == 5
        assert sleep.await_count == 4

    @pytest.mark.asyncio
    async def test_fetch_errors_are_retried(self) -> None:
        fetch = AsyncMock(side_effect=[RpcError("down"), [_event()]])
        with patch("blockcoop.services.confirmation.asyncio.sleep", new=AsyncMock()):
            assert await wait_for_event(fetch, TX) is not None


class TestWaitForDeposit:
    @pytest.mark.asyncio
    async def test_returns_when_expected_reached(self) -> None:
        read = AsyncMock(side_effect=[50, 80, 100])
        with patch("blockcoop.services.confirmation.asyncio.sleep", new=AsyncMock()):
            amount = await wait_for_deposit(read, 100)
        assert amount == 100
        assert read.await_count == 3

    @pytest.mark.asyncio
    async def test_times_out(self) -> None:
        read = AsyncMock(return_value=10)
        sleep = AsyncMock()
        with patch("blockcoop.services.confirmation.asyncio.sleep", new=sleep):
            with pytest.raises(ConfirmationTimeout, match="took too long"):
                await wait_for_deposit(read, 100, timeout=10, interval=1)
        assert read.await_count == 10
        sleep.assert_awaited_with(1)

    @pytest.mark.asyncio
    async def test_read_errors_keep_polling(self) -> None:
        read = AsyncMock(side_effect=[RpcError("flaky"), 100])
        with patch("blockcoop.services.confirmation.asyncio.sleep", new=AsyncMock()):
            assert await wait_for_deposit(read, 100) == 100
