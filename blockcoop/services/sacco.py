"""SACCO workflows: member, fund-manager and owner operations.

Every write goes through the same path: validate locally, build and sign the
call, broadcast, wait for the receipt, then post a success message. Failures
are mapped to a user-facing message on the board and re-raised.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Awaitable, Callable, cast

from eth_utils import is_address, to_checksum_address

from ..calculations import (
    LOAN_DURATION_OPTIONS,
    MIN_LOAN_DURATION_DAYS,
    available_collateral,
    duration_seconds,
    format_token_amount,
    format_units,
    max_borrow_amount,
    parse_units,
)
from ..chains.evm import EvmClient
from ..config import ZERO_ADDRESS, AppConfig
from ..contracts import Erc20Token, EventFeed, LoanManager, TokenRegistry
from ..errors import (
    FUND_MANAGER_MESSAGES,
    LOAN_REQUEST_MESSAGES,
    BlockCoopError,
    MessageTable,
    ValidationError,
    describe_error,
)
from ..interfaces.chain import ChainClient
from ..interfaces.price_oracle import PriceOracle
from ..models import CollateralPosition, LoanRequest, TokenInfo
from ..oracles import RegistryPriceOracle
from ..wallet import Wallet
from .confirmation import wait_for_deposit, wait_for_event, wait_for_receipt
from .messages import MessageBoard
from .roles import MANAGER, MEMBER, OWNER, Roles, require_access, resolve_roles

logger = logging.getLogger(__name__)


class SaccoService:
    """Entry point for every SACCO operation against the two contracts."""

    def __init__(
        self,
        config: AppConfig,
        client: ChainClient | None = None,
        board: MessageBoard | None = None,
    ) -> None:
        self._config = config
        self._polling = config.polling
        self._client: ChainClient = client or EvmClient(config.chain)
        self.board = board or MessageBoard(config.messages.ttl_seconds)
        self.wallet = Wallet(config.wallet, self._client)

        self.registry = TokenRegistry(config.contracts.registry, self._client, self.wallet)
        self.loan_manager = LoanManager(
            config.contracts.loan_manager, self._client, self.wallet
        )
        self.events = EventFeed(self.registry.address, self._client)
        self.oracle: PriceOracle = RegistryPriceOracle(self.registry)

        self._roles: Roles | None = None
        self._token_cache: dict[str, TokenInfo] = {}

    @property
    def client(self) -> ChainClient:
        return self._client

    def erc20(self, address: str) -> Erc20Token:
        return Erc20Token(address, self._client, self.wallet)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    async def roles(self, refresh: bool = False) -> Roles:
        if self._roles is None or refresh:
            self._roles = await resolve_roles(self.registry, self.wallet.address)
        return self._roles

    async def _require(self, level: str, action: str) -> str:
        """Check access and return the connected address."""
        if level == MEMBER:
            roles = Roles(address=self.wallet.address)
        else:
            roles = await self.roles()
        require_access(roles, level, action)
        return cast(str, roles.address)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def whitelisted_tokens(self) -> list[TokenInfo]:
        infos = await self.registry.tokens_info()
        for info in infos:
            self._token_cache[info.address.lower()] = info
        return infos

    async def resolve_token(self, token: str) -> TokenInfo:
        """Resolve a symbol or address to a TokenInfo with the right decimals."""
        if not is_address(token):
            for cfg in self._config.tokens:
                if cfg.symbol.lower() == token.lower():
                    token = cfg.token_address
                    break
            else:
                for info in await self.whitelisted_tokens():
                    if info.symbol.lower() == token.lower():
                        return info
                raise ValidationError(f"Unknown token '{token}'")

        key = token.lower()
        if key in self._token_cache:
            return self._token_cache[key]
        if not self._token_cache:
            try:
                await self.whitelisted_tokens()
            except BlockCoopError as e:
                logger.warning("Could not load whitelisted tokens: %s", e)
            if key in self._token_cache:
                return self._token_cache[key]

        contract = self.erc20(token)
        symbol, decimals = await asyncio.gather(contract.symbol(), contract.decimals())
        name = next(
            (c.name for c in self._config.tokens if c.token_address.lower() == key),
            symbol,
        )
        info = TokenInfo(
            address=to_checksum_address(token), name=name, symbol=symbol, decimals=decimals
        )
        self._token_cache[key] = info
        return info

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def collateral_position(self, user: str, token: str) -> CollateralPosition:
        """Deposit and locked amount, read concurrently."""
        deposit, locked = await asyncio.gather(
            self.registry.user_deposit(user, token),
            self.registry.locked_amount(user, token),
        )
        return CollateralPosition(
            token=token,
            deposited=deposit.amount,
            locked=locked,
            available=available_collateral(deposit.amount, locked),
        )

    async def max_borrow(
        self, collateral_token: str, collateral_amount: str, loan_token: str
    ) -> Decimal:
        """Largest ``loan_token`` amount the collateral supports at the current LTV."""
        collateral = await self.resolve_token(collateral_token)
        loan = await self.resolve_token(loan_token)
        raw = self._parse_amount(collateral_amount, collateral.decimals)
        prices, ltv = await asyncio.gather(
            self.oracle.fetch_prices([collateral.address, loan.address]),
            self.loan_manager.max_ltv_ratio(),
        )
        return max_borrow_amount(
            format_units(raw, collateral.decimals),
            prices.get(collateral.address.lower()),
            prices.get(loan.address.lower()),
            ltv,
        )

    async def pending_requests(self) -> list[LoanRequest]:
        await self._require(MANAGER, "Viewing pending requests")
        return await self.loan_manager.pending_requests()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _reporting(
        self, action: str, messages: MessageTable = ()
    ) -> AsyncIterator[None]:
        """Post a friendly error for any client failure inside the block.

        ``messages`` maps revert reasons specific to this action.
        """
        try:
            yield
        except BlockCoopError as e:
            message = describe_error(e, messages, default=f"{action} failed")
            e.friendly = message
            self.board.show_error(message)
            logger.error("%s failed: %s", action, e)
            raise

    async def _send(self, submit: Callable[[], Awaitable[str]]) -> str:
        tx_hash = await submit()
        await wait_for_receipt(
            self._client,
            tx_hash,
            timeout=self._polling.receipt_timeout,
            interval=self._polling.receipt_interval,
        )
        return tx_hash

    def _success(self, action: str, tx_hash: str) -> None:
        self.board.show_success(f"{action} successful! Transaction hash: {tx_hash}")

    @staticmethod
    def _parse_amount(amount: str | Decimal | int, decimals: int) -> int:
        try:
            raw = parse_units(amount, decimals)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if raw <= 0:
            raise ValidationError("Amount must be greater than zero")
        return raw

    @staticmethod
    def _checked_address(address: str, what: str = "address") -> str:
        if not is_address(address):
            raise ValidationError(f"Invalid {what}: {address}")
        return to_checksum_address(address)

    async def _ensure_allowance(
        self, token: Erc20Token, owner: str, spender: str, amount: int
    ) -> None:
        allowance = await token.allowance(owner, spender)
        if allowance >= amount:
            return
        logger.info("Approving %s to spend %d of %s", spender, amount, token.address)
        await self._send(lambda: token.approve(spender, amount))

    async def _deposit_raw(self, token: TokenInfo, raw: int) -> str:
        """Approve the registry and deposit ``raw`` units of ``token``."""
        contract = self.erc20(token.address)
        await self._send(lambda: contract.approve(self.registry.address, raw))
        return await self._send(lambda: self.registry.deposit(token.address, raw))

    # ------------------------------------------------------------------
    # Member workflows
    # ------------------------------------------------------------------

    async def deposit(self, token: str, amount: str) -> str:
        async with self._reporting("Deposit"):
            user = await self._require(MEMBER, "Deposit")
            info = await self.resolve_token(token)
            raw = self._parse_amount(amount, info.decimals)

            balance = await self.erc20(info.address).balance_of(user)
            if raw > balance:
                raise ValidationError(
                    f"Insufficient {info.symbol} balance: wallet holds "
                    f"{format_token_amount(balance, info.decimals)}"
                )

            from_block = await self._client.get_block_number()
            tx_hash = await self._deposit_raw(info, raw)

            event = await wait_for_event(
                lambda: self.events.fetch(from_block, names=["Deposit"]),
                tx_hash,
                attempts=self._polling.event_attempts,
                interval=self._polling.event_interval,
                match={"user": user},
            )
            if event is None:
                logger.warning("Deposit event for %s not observed yet", tx_hash)

        self.board.show_success(
            f"Successfully deposited {format_token_amount(raw, info.decimals)} {info.symbol}!"
        )
        return tx_hash

    async def withdraw(self, token: str, amount: str) -> str:
        async with self._reporting("Withdrawal"):
            user = await self._require(MEMBER, "Withdrawal")
            info = await self.resolve_token(token)
            raw = self._parse_amount(amount, info.decimals)

            position = await self.collateral_position(user, info.address)
            if raw > position.available:
                raise ValidationError(
                    "Insufficient available balance: "
                    f"{format_token_amount(position.available, info.decimals)} {info.symbol} "
                    f"available ({format_token_amount(position.locked, info.decimals)} locked)"
                )

            from_block = await self._client.get_block_number()
            tx_hash = await self._send(lambda: self.registry.withdraw(info.address, raw))

            event = await wait_for_event(
                lambda: self.events.fetch(from_block, names=["Withdraw"]),
                tx_hash,
                attempts=self._polling.event_attempts,
                interval=self._polling.event_interval,
                match={"user": user},
            )
            if event is None:
                logger.warning("Withdraw event for %s not observed yet", tx_hash)

        self.board.show_success(
            f"Successfully withdrew {format_token_amount(raw, info.decimals)} {info.symbol}!"
        )
        return tx_hash

    async def request_loan(
        self,
        loan_token: str,
        loan_amount: str,
        collateral_token: str,
        collateral_amount: str,
        duration_days: int,
    ) -> str:
        async with self._reporting("Loan request", LOAN_REQUEST_MESSAGES):
            user = await self._require(MEMBER, "Loan request")
            if duration_days < MIN_LOAN_DURATION_DAYS:
                raise ValidationError(
                    f"Loan duration must be at least {MIN_LOAN_DURATION_DAYS} days"
                )
            if duration_days not in LOAN_DURATION_OPTIONS:
                options = ", ".join(str(d) for d in LOAN_DURATION_OPTIONS)
                raise ValidationError(f"Loan duration must be one of: {options} days")

            loan = await self.resolve_token(loan_token)
            collateral = await self.resolve_token(collateral_token)
            loan_raw = self._parse_amount(loan_amount, loan.decimals)
            collateral_raw = self._parse_amount(collateral_amount, collateral.decimals)

            limit = await self.max_borrow(collateral.address, collateral_amount, loan.address)
            if format_units(loan_raw, loan.decimals) > limit:
                raise ValidationError(
                    f"Loan amount exceeds maximum borrowable amount of {limit:.6f} {loan.symbol}"
                )

            position = await self.collateral_position(user, collateral.address)
            if position.available < collateral_raw:
                shortfall = collateral_raw - position.available
                logger.info(
                    "Depositing %s %s of additional collateral",
                    format_token_amount(shortfall, collateral.decimals),
                    collateral.symbol,
                )
                await self._deposit_raw(collateral, shortfall)

                async def _deposited() -> int:
                    return (await self.registry.user_deposit(user, collateral.address)).amount

                await wait_for_deposit(
                    _deposited,
                    position.deposited + shortfall,
                    timeout=self._polling.deposit_timeout,
                    interval=self._polling.deposit_interval,
                )

            tx_hash = await self._send(
                lambda: self.loan_manager.request_loan(
                    loan.address,
                    loan_raw,
                    [collateral.address],
                    [collateral_raw],
                    duration_seconds(duration_days),
                )
            )

        self._success("Loan request", tx_hash)
        return tx_hash

    async def repay(self, loan_id: int, amount: str) -> str:
        async with self._reporting("Repayment"):
            user = await self._require(MEMBER, "Repayment")
            loan = await self.loan_manager.loan(loan_id)
            if not loan.is_active:
                raise ValidationError(f"Loan #{loan_id} is not active")

            info = await self.resolve_token(loan.loan_token)
            raw = self._parse_amount(amount, info.decimals)
            await self._ensure_allowance(
                self.erc20(info.address), user, self.loan_manager.address, raw
            )
            tx_hash = await self._send(lambda: self.loan_manager.repay_loan(loan_id, raw))

        self._success("Repayment", tx_hash)
        return tx_hash

    # ------------------------------------------------------------------
    # Fund-manager workflows
    # ------------------------------------------------------------------

    async def _pending_request(self, request_id: int) -> LoanRequest:
        """Fresh read of a request; refuses ones that were processed meanwhile."""
        requests = await self.loan_manager.pending_requests()
        for request in requests:
            if request.request_id == request_id and not request.processed:
                return request
        raise ValidationError(f"Loan request #{request_id} is no longer pending")

    async def _settle_request(self, request_id: int, approve: bool) -> str:
        action = "Loan approval" if approve else "Loan rejection"
        async with self._reporting(action):
            await self._require(MANAGER, action)
            await self._pending_request(request_id)

            settle = (
                self.loan_manager.approve_request
                if approve
                else self.loan_manager.reject_request
            )
            tx_hash = await self._send(lambda: settle(request_id))

            await asyncio.sleep(self._polling.refetch_delay)
            try:
                remaining = await self.loan_manager.pending_requests()
                logger.info("%d loan request(s) still pending", len(remaining))
            except BlockCoopError as e:
                logger.warning("Could not refresh pending requests: %s", e)

        self._success(action, tx_hash)
        return tx_hash

    async def approve_request(self, request_id: int) -> str:
        return await self._settle_request(request_id, approve=True)

    async def reject_request(self, request_id: int) -> str:
        return await self._settle_request(request_id, approve=False)

    async def liquidate(self, loan_id: int) -> str:
        async with self._reporting("Liquidation"):
            await self._require(MANAGER, "Liquidation")
            if not await self.loan_manager.is_liquidatable(loan_id):
                raise ValidationError(f"Loan #{loan_id} is not eligible for liquidation")
            tx_hash = await self._send(lambda: self.loan_manager.liquidate_loan(loan_id))

        self._success("Liquidation", tx_hash)
        return tx_hash

    async def add_liquidity(self, token: str, amount: str) -> str:
        async with self._reporting("Add liquidity"):
            user = await self._require(MANAGER, "Add liquidity")
            info = await self.resolve_token(token)
            raw = self._parse_amount(amount, info.decimals)
            await self._ensure_allowance(
                self.erc20(info.address), user, self.loan_manager.address, raw
            )
            tx_hash = await self._send(
                lambda: self.loan_manager.add_liquidity(info.address, raw)
            )

        self._success("Add liquidity", tx_hash)
        return tx_hash

    async def remove_liquidity(self, token: str, shares: str) -> str:
        async with self._reporting("Remove liquidity"):
            user = await self._require(MANAGER, "Remove liquidity")
            info = await self.resolve_token(token)
            raw = self._parse_amount(shares, info.decimals)
            position = await self.loan_manager.user_lp_position(user, info.address)
            if raw > position.shares:
                raise ValidationError(
                    f"Insufficient LP shares: {format_token_amount(position.shares, info.decimals)}"
                )
            tx_hash = await self._send(
                lambda: self.loan_manager.remove_liquidity(info.address, raw)
            )

        self._success("Remove liquidity", tx_hash)
        return tx_hash

    async def set_pool_status(self, token: str, is_active: bool) -> str:
        async with self._reporting("Pool status update"):
            await self._require(MANAGER, "Pool status update")
            info = await self.resolve_token(token)
            tx_hash = await self._send(
                lambda: self.loan_manager.set_pool_status(info.address, is_active)
            )

        self._success("Pool status update", tx_hash)
        return tx_hash

    # ------------------------------------------------------------------
    # Owner workflows
    # ------------------------------------------------------------------

    async def add_fund_manager(self, manager: str) -> str:
        async with self._reporting("Add fund manager", FUND_MANAGER_MESSAGES):
            await self._require(OWNER, "Add fund manager")
            if manager.lower() == ZERO_ADDRESS:
                raise ValidationError("Cannot add zero address as a fund manager")
            address = self._checked_address(manager, "fund manager address")
            if await self.registry.is_fund_manager(address):
                raise ValidationError("This address is already registered as a fund manager")
            tx_hash = await self._send(lambda: self.registry.add_fund_manager(address))

        self._success("Add fund manager", tx_hash)
        return tx_hash

    async def remove_fund_manager(self, manager: str) -> str:
        async with self._reporting("Remove fund manager", FUND_MANAGER_MESSAGES):
            await self._require(OWNER, "Remove fund manager")
            address = self._checked_address(manager, "fund manager address")
            tx_hash = await self._send(lambda: self.registry.remove_fund_manager(address))

        self._success("Remove fund manager", tx_hash)
        return tx_hash

    async def whitelist_token(
        self, token: str, price_feed: str, is_stable: bool = False
    ) -> str:
        async with self._reporting("Whitelist token"):
            await self._require(OWNER, "Whitelist token")
            token_address = self._checked_address(token, "token address")
            feed_address = self._checked_address(price_feed, "price feed address")
            tx_hash = await self._send(
                lambda: self.registry.whitelist_token(token_address, feed_address, is_stable)
            )

        self._token_cache.clear()
        self._success("Whitelist token", tx_hash)
        return tx_hash

    async def unwhitelist_token(self, token: str) -> str:
        async with self._reporting("Remove token"):
            await self._require(OWNER, "Remove token")
            info = await self.resolve_token(token)
            tx_hash = await self._send(lambda: self.registry.unwhitelist_token(info.address))

        self._token_cache.pop(info.address.lower(), None)
        self._success("Remove token", tx_hash)
        return tx_hash

    async def set_loan_manager(self, loan_manager: str) -> str:
        async with self._reporting("Set loan manager"):
            await self._require(OWNER, "Set loan manager")
            address = self._checked_address(loan_manager, "loan manager address")
            tx_hash = await self._send(lambda: self.registry.set_loan_manager(address))

        self._success("Set loan manager", tx_hash)
        return tx_hash

    async def add_supported_token(self, token: str) -> str:
        async with self._reporting("Add supported token"):
            await self._require(OWNER, "Add supported token")
            info = await self.resolve_token(token)
            tx_hash = await self._send(
                lambda: self.loan_manager.add_supported_token(info.address)
            )

        self._success("Add supported token", tx_hash)
        return tx_hash

    async def remove_supported_token(self, token: str) -> str:
        async with self._reporting("Remove supported token"):
            await self._require(OWNER, "Remove supported token")
            info = await self.resolve_token(token)
            tx_hash = await self._send(
                lambda: self.loan_manager.remove_supported_token(info.address)
            )

        self._success("Remove supported token", tx_hash)
        return tx_hash
