"""Contract bindings against an in-memory chain."""
from __future__ import annotations

import pytest

from blockcoop.config import WalletConfig
from blockcoop.contracts import Erc20Token, EventFeed, LoanManager, TokenRegistry
from blockcoop.contracts import erc20, events, loan_manager, registry
from blockcoop.errors import RpcError, TransactionError
from blockcoop.wallet import Wallet
from tests.conftest import (
    CELO,
    CUSD,
    LOAN_MANAGER_ADDRESS,
    OTHER_ADDRESS,
    PRICE_FEED,
    REGISTRY_ADDRESS,
    TEST_ADDRESS,
    TEST_PRIVATE_KEY,
    WAD,
    FakeChain,
    make_log,
)

DAY = 86_400


@pytest.fixture()
def wallet(chain: FakeChain) -> Wallet:
    return Wallet(WalletConfig(private_key=TEST_PRIVATE_KEY), chain)


@pytest.fixture()
def token_registry(chain: FakeChain, wallet: Wallet) -> TokenRegistry:
    return TokenRegistry(REGISTRY_ADDRESS, chain, wallet)


@pytest.fixture()
def manager(chain: FakeChain, wallet: Wallet) -> LoanManager:
    return LoanManager(LOAN_MANAGER_ADDRESS, chain, wallet)


class TestWallet:
    def test_address_from_key(self, wallet: Wallet) -> None:
        assert wallet.address == TEST_ADDRESS
        assert wallet.can_sign
        assert wallet.is_connected

    def test_watch_only_address(self, chain: FakeChain) -> None:
        w = Wallet(WalletConfig(address=OTHER_ADDRESS), chain)
        assert w.address == "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
        assert not w.can_sign

    def test_disconnected(self, chain: FakeChain) -> None:
        w = Wallet(WalletConfig(), chain)
        assert w.address is None
        assert not w.is_connected

    @pytest.mark.asyncio
    async def test_read_only_wallet_cannot_send(self, chain: FakeChain) -> None:
        w = Wallet(WalletConfig(address=OTHER_ADDRESS), chain)
        reg = TokenRegistry(REGISTRY_ADDRESS, chain, w)
        with pytest.raises(TransactionError, match="read-only"):
            await reg.deposit(CUSD, 1)
        assert chain.sent == []

    @pytest.mark.asyncio
    async def test_contract_without_wallet_cannot_send(self, chain: FakeChain) -> None:
        reg = TokenRegistry(REGISTRY_ADDRESS, chain)
        with pytest.raises(TransactionError, match="No wallet connected"):
            await reg.withdraw(CUSD, 1)

    @pytest.mark.asyncio
    async def test_revert_reason_surfaces(self, chain: FakeChain, wallet: Wallet) -> None:
        chain.reverts["addFundManager"] = "Already a fund manager"
        reg = TokenRegistry(REGISTRY_ADDRESS, chain, wallet)
        with pytest.raises(TransactionError, match="Already a fund manager"):
            await reg.add_fund_manager(OTHER_ADDRESS)
        assert chain.sent == []


class TestTokenRegistry:
    @pytest.mark.asyncio
    async def test_owner_and_fund_manager(
        self, chain: FakeChain, token_registry: TokenRegistry
    ) -> None:
        chain.on(registry.OWNER, TEST_ADDRESS)
        chain.on(registry.IS_FUND_MANAGER, lambda addr: addr == OTHER_ADDRESS)

        assert (await token_registry.owner()).lower() == TEST_ADDRESS.lower()
        assert await token_registry.is_fund_manager(OTHER_ADDRESS) is True
        assert await token_registry.is_fund_manager(TEST_ADDRESS) is False

    @pytest.mark.asyncio
    async def test_tokens_info(
        self, chain: FakeChain, token_registry: TokenRegistry, tokens_info_result: tuple
    ) -> None:
        chain.on(registry.TOKENS_INFO, tokens_info_result)

        infos = await token_registry.tokens_info()

        assert [i.symbol for i in infos] == ["cUSD", "CELO"]
        assert infos[0].address.lower() == CUSD
        assert infos[1].price == WAD // 2

    @pytest.mark.asyncio
    async def test_tokens_info_fills_missing_metadata(
        self, chain: FakeChain, token_registry: TokenRegistry
    ) -> None:
        chain.on(registry.TOKENS_INFO, ([CUSD], [""], [""], [0], [WAD]))

        (info,) = await token_registry.tokens_info()

        assert info.name == "Unknown"
        assert info.symbol == "Unknown"
        assert info.decimals == 18

    @pytest.mark.asyncio
    async def test_user_deposit_and_locked(
        self, chain: FakeChain, token_registry: TokenRegistry
    ) -> None:
        chain.on(registry.USER_DEPOSITS, (5 * WAD, 1_700_000_000))
        chain.on(registry.LOCKED_AMOUNT, 2 * WAD)

        deposit = await token_registry.user_deposit(TEST_ADDRESS, CUSD)
        locked = await token_registry.locked_amount(TEST_ADDRESS, CUSD)

        assert deposit.amount == 5 * WAD
        assert deposit.timestamp == 1_700_000_000
        assert locked == 2 * WAD

    @pytest.mark.asyncio
    async def test_user_total_value(
        self, chain: FakeChain, token_registry: TokenRegistry
    ) -> None:
        chain.on(registry.USER_TOTAL_VALUE_USD, (42 * WAD, 2))
        assert await token_registry.user_total_value_usd(TEST_ADDRESS) == (42 * WAD, 2)

    @pytest.mark.asyncio
    async def test_writes_are_encoded(
        self, chain: FakeChain, token_registry: TokenRegistry
    ) -> None:
        tx_hash = await token_registry.whitelist_token(CELO, PRICE_FEED, False)

        assert tx_hash.startswith("0x")
        to, name, args = chain.sent[0]
        assert to.lower() == REGISTRY_ADDRESS
        assert name == "whitelistToken"
        assert args == (CELO, PRICE_FEED, False)

    @pytest.mark.asyncio
    async def test_nonces_increase(
        self, chain: FakeChain, token_registry: TokenRegistry
    ) -> None:
        first = await token_registry.deposit(CUSD, WAD)
        second = await token_registry.withdraw(CUSD, WAD)
        assert first != second
        assert chain.sent_names() == ["deposit", "withdraw"]


class TestLoanManager:
    @pytest.mark.asyncio
    async def test_max_ltv_falls_back(self, chain: FakeChain, manager: LoanManager) -> None:
        assert await manager.max_ltv_ratio() == 7000

        chain.on(loan_manager.MAX_LTV_RATIO, 6500)
        assert await manager.max_ltv_ratio() == 6500

    @pytest.mark.asyncio
    async def test_pending_requests_indexed(
        self, chain: FakeChain, manager: LoanManager
    ) -> None:
        chain.on(
            loan_manager.PENDING_REQUESTS,
            [
                (OTHER_ADDRESS, CUSD, 10 * WAD, [CELO], [40 * WAD], 30 * DAY, False, False, 111),
                (TEST_ADDRESS, CUSD, 5 * WAD, [CELO], [20 * WAD], 7 * DAY, False, False, 222),
            ],
        )

        requests = await manager.pending_requests()

        assert [r.request_id for r in requests] == [0, 1]
        assert requests[0].collateral_tokens == (CELO,)
        assert requests[0].duration_days == 30
        assert requests[1].timestamp == 222
        assert requests[1].status == "Pending"

    @pytest.mark.asyncio
    async def test_borrower_requests(self, chain: FakeChain, manager: LoanManager) -> None:
        chain.on(
            loan_manager.BORROWER_REQUESTS,
            [(TEST_ADDRESS, CUSD, WAD, [CELO], [3 * WAD], 14 * DAY, True, True)],
        )

        (request,) = await manager.borrower_requests(TEST_ADDRESS)

        assert request.status == "Approved"
        assert request.timestamp == 0

    @pytest.mark.asyncio
    async def test_user_loan_ids_skip_reverting_slots(
        self, chain: FakeChain, manager: LoanManager
    ) -> None:
        ids = {0: 3, 1: 8}

        def slot(user, index):
            if index in ids:
                return ids[index]
            return RpcError("execution reverted")

        chain.on(loan_manager.USER_LOAN_AT, slot)

        assert await manager.user_loan_ids(TEST_ADDRESS) == [3, 8]

    @pytest.mark.asyncio
    async def test_user_loans(self, chain: FakeChain, manager: LoanManager) -> None:
        chain.on(
            loan_manager.USER_LOAN_AT,
            lambda user, index: 4 if index == 0 else RpcError("execution reverted"),
        )
        chain.on(
            loan_manager.LOAN,
            lambda loan_id: (TEST_ADDRESS, CUSD, 10 * WAD, 500, 1_000, 30 * DAY, True, 4 * WAD, loan_id),
        )

        (loan,) = await manager.user_loans(TEST_ADDRESS)

        assert loan.loan_id == 4
        assert loan.remaining_debt == 6 * WAD
        assert loan.end_time == 1_000 + 30 * DAY

    @pytest.mark.asyncio
    async def test_loan_id_defaults_to_lookup_key(
        self, chain: FakeChain, manager: LoanManager
    ) -> None:
        chain.on(
            loan_manager.LOAN,
            (TEST_ADDRESS, CUSD, WAD, 500, 0, DAY, False, WAD, 0),
        )
        loan = await manager.loan(9)
        assert loan.loan_id == 9
        assert not loan.is_active

    @pytest.mark.asyncio
    async def test_pool_info(self, chain: FakeChain, manager: LoanManager) -> None:
        chain.on(loan_manager.POOL_INFO, (100 * WAD, 40 * WAD, 60 * WAD, 100 * WAD, 4000, True))

        info = await manager.pool_info(CUSD)

        assert info.available_liquidity == 60 * WAD
        assert info.utilization == 4000
        assert info.is_active

    @pytest.mark.asyncio
    async def test_liquidation_info(self, chain: FakeChain, manager: LoanManager) -> None:
        chain.on(loan_manager.LIQUIDATION_INFO, (10 * WAD, 9 * WAD, 9000, 8500))

        info = await manager.liquidation_info(1)

        assert info.current_ltv == 9000
        assert info.liquidation_threshold == 8500

    @pytest.mark.asyncio
    async def test_request_loan_encodes_arrays(
        self, chain: FakeChain, manager: LoanManager
    ) -> None:
        await manager.request_loan(CUSD, 10 * WAD, [CELO], [40 * WAD], 30 * DAY)

        _, name, args = chain.sent[0]
        assert name == "requestLoan"
        assert args == (CUSD, 10 * WAD, (CELO,), (40 * WAD,), 30 * DAY)


class TestErc20:
    @pytest.mark.asyncio
    async def test_reads(self, chain: FakeChain, wallet: Wallet) -> None:
        chain.on(erc20.BALANCE_OF, 7 * WAD)
        chain.on(erc20.SYMBOL, "cUSD")
        chain.on(erc20.DECIMALS, 18)
        chain.on(erc20.ALLOWANCE, 0)
        token = Erc20Token(CUSD, chain, wallet)

        assert await token.balance_of(TEST_ADDRESS) == 7 * WAD
        assert await token.symbol() == "cUSD"
        assert await token.decimals() == 18
        assert await token.allowance(TEST_ADDRESS, REGISTRY_ADDRESS) == 0

    @pytest.mark.asyncio
    async def test_approve(self, chain: FakeChain, wallet: Wallet) -> None:
        token = Erc20Token(CUSD, chain, wallet)
        await token.approve(REGISTRY_ADDRESS, WAD)

        to, name, args = chain.sent[0]
        assert to.lower() == CUSD
        assert name == "approve"
        assert args == (REGISTRY_ADDRESS, WAD)


class TestEventFeed:
    @pytest.mark.asyncio
    async def test_fetch_decodes_known_events(self, chain: FakeChain) -> None:
        chain.logs = [
            make_log(events.DEPOSIT, "0xaa", 101, user=TEST_ADDRESS, tokenAddress=CUSD, amount=WAD),
            make_log(events.FUND_MANAGER_ADDED, "0xbb", 102, fundManager=OTHER_ADDRESS),
        ]
        feed = EventFeed(REGISTRY_ADDRESS, chain)

        fetched = await feed.fetch(100)

        assert [e.name for e in fetched] == ["Deposit", "FundManagerAdded"]
        deposit = fetched[0]
        assert deposit.block_number == 101
        assert deposit.args["user"] == TEST_ADDRESS.lower()
        assert deposit.args["tokenAddress"] == CUSD
        assert deposit.args["amount"] == WAD

    @pytest.mark.asyncio
    async def test_fetch_filters_by_name(self, chain: FakeChain) -> None:
        chain.logs = [
            make_log(events.DEPOSIT, "0xaa", user=TEST_ADDRESS, tokenAddress=CUSD, amount=WAD),
            make_log(events.WITHDRAW, "0xbb", user=TEST_ADDRESS, tokenAddress=CUSD, amount=WAD),
        ]
        feed = EventFeed(REGISTRY_ADDRESS, chain)

        fetched = await feed.fetch(0, names=["Withdraw"])

        assert [e.transaction_hash for e in fetched] == ["0xbb"]

    def test_unknown_event_name(self, chain: FakeChain) -> None:
        feed = EventFeed(REGISTRY_ADDRESS, chain)
        with pytest.raises(ValueError, match="Unknown event"):
            feed._topics_for(["Borrowed"])

    def test_decode_ignores_foreign_topics(self, chain: FakeChain) -> None:
        feed = EventFeed(REGISTRY_ADDRESS, chain)
        assert feed.decode({"topics": ["0x" + "00" * 32]}) is None
        assert feed.decode({"topics": []}) is None

    @pytest.mark.asyncio
    async def test_undecodable_log_skipped(self, chain: FakeChain) -> None:
        broken = make_log(events.DEPOSIT, "0xaa", user=TEST_ADDRESS, tokenAddress=CUSD, amount=WAD)
        broken["data"] = "0x01"
        good = make_log(events.DEPOSIT, "0xbb", user=TEST_ADDRESS, tokenAddress=CUSD, amount=WAD)
        chain.logs = [broken, good]
        feed = EventFeed(REGISTRY_ADDRESS, chain)

        fetched = await feed.fetch(0)

        assert [e.transaction_hash for e in fetched] == ["0xbb"]

    @pytest.mark.asyncio
    async def test_recent_uses_lookback(self, chain: FakeChain) -> None:
        chain.block_number = 500
        chain.logs = [
            make_log(events.FUND_MANAGER_ADDED, "0xold", 100, fundManager=OTHER_ADDRESS),
            make_log(events.FUND_MANAGER_ADDED, "0xnew", 450, fundManager=OTHER_ADDRESS),
        ]
        feed = EventFeed(REGISTRY_ADDRESS, chain)

        fetched = await feed.recent(100)

        assert [e.transaction_hash for e in fetched] == ["0xnew"]
