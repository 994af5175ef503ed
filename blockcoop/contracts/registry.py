"""BlockCoopTokens: token whitelist, member deposits and fund-manager roster."""
from __future__ import annotations

from ..models import TokenInfo, UserDeposit
from .base import Contract

OWNER = "function owner() view returns (address)"
IS_FUND_MANAGER = "function isFundManager(address) view returns (bool)"
ADD_FUND_MANAGER = "function addFundManager(address _manager)"
REMOVE_FUND_MANAGER = "function removeFundManager(address _manager)"
ACTIVE_FUND_MANAGERS = "function getAllActiveFundManagers() view returns (address[])"
TOKENS_INFO = (
    "function getTokensInfo(uint256 _offset, uint256 _limit) view returns "
    "(address[] tokens, string[] names, string[] symbols, uint8[] decimals, uint256[] prices)"
)
USER_TOTAL_VALUE_USD = (
    "function getUserTotalValueUSD(address _user, uint256 _offset, uint256 _limit) "
    "view returns (uint256 totalValue, uint256 processedTokens)"
)
HAS_USER_DEPOSITED_TOKEN = (
    "function hasUserDepositedToken(address _user, address _token) view returns (bool)"
)
USER_DEPOSITED_TOKENS = "function getUserDepositedTokens(address _user) view returns (address[])"
WHITELISTED_TOKEN_COUNT = "function getWhitelistedTokenCount() view returns (uint256)"
WHITELIST_TOKEN = (
    "function whitelistToken(address _tokenAddress, address _priceFeed, bool _isStable)"
)
UNWHITELIST_TOKEN = "function unWhitelistToken(address _tokenAddress)"
DEPOSIT = "function deposit(address _token, uint256 _amount)"
APPROVE_SPENDER = "function approveSpender(address _token, uint256 _amount)"
WITHDRAW = "function withdraw(address _tokenAddress, uint256 _amount)"
USER_DEPOSITS = (
    "function userDeposits(address user, address token) view returns "
    "(uint256 amount, uint256 timestamp)"
)
LOCKED_AMOUNT = (
    "function getLockedAmount(address user, address tokenAddress) view returns (uint256)"
)
LOAN_MANAGER = "function loanManager() view returns (address)"
SET_LOAN_MANAGER = "function setLoanManager(address _loanManager)"

DEFAULT_PAGE_SIZE = 100


class TokenRegistry(Contract):
    """Read and write hooks for the token/deposit registry."""

    # -- roles ---------------------------------------------------------

    async def owner(self) -> str:
        return await self.read(OWNER)

    async def is_fund_manager(self, address: str) -> bool:
        return await self.read(IS_FUND_MANAGER, address)

    async def active_fund_managers(self) -> list[str]:
        return list(await self.read(ACTIVE_FUND_MANAGERS))

    async def add_fund_manager(self, manager: str) -> str:
        return await self.write(ADD_FUND_MANAGER, manager)

    async def remove_fund_manager(self, manager: str) -> str:
        return await self.write(REMOVE_FUND_MANAGER, manager)

    # -- tokens --------------------------------------------------------

    async def tokens_info(
        self, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE
    ) -> list[TokenInfo]:
        addresses, names, symbols, decimals, prices = await self.read(
            TOKENS_INFO, offset, limit
        )
        return [
            TokenInfo(
                address=addr,
                name=names[i] or "Unknown",
                symbol=symbols[i] or "Unknown",
                decimals=decimals[i] or 18,
                price=prices[i],
            )
            for i, addr in enumerate(addresses)
        ]

    async def whitelisted_token_count(self) -> int:
        return await self.read(WHITELISTED_TOKEN_COUNT)

    async def whitelist_token(self, token: str, price_feed: str, is_stable: bool) -> str:
        return await self.write(WHITELIST_TOKEN, token, price_feed, is_stable)

    async def unwhitelist_token(self, token: str) -> str:
        return await self.write(UNWHITELIST_TOKEN, token)

    # -- deposits ------------------------------------------------------

    async def user_deposit(self, user: str, token: str) -> UserDeposit:
        amount, timestamp = await self.read(USER_DEPOSITS, user, token)
        return UserDeposit(amount=amount, timestamp=timestamp)

    async def locked_amount(self, user: str, token: str) -> int:
        return await self.read(LOCKED_AMOUNT, user, token)

    async def user_deposited_tokens(self, user: str) -> list[str]:
        return list(await self.read(USER_DEPOSITED_TOKENS, user))

    async def has_user_deposited_token(self, user: str, token: str) -> bool:
        return await self.read(HAS_USER_DEPOSITED_TOKEN, user, token)

    async def user_total_value_usd(
        self, user: str, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE
    ) -> tuple[int, int]:
        """(total value x 1e18, number of tokens processed)."""
        total, processed = await self.read(USER_TOTAL_VALUE_USD, user, offset, limit)
        return total, processed

    async def deposit(self, token: str, amount: int) -> str:
        return await self.write(DEPOSIT, token, amount)

    async def approve_spender(self, token: str, amount: int) -> str:
        return await self.write(APPROVE_SPENDER, token, amount)

    async def withdraw(self, token: str, amount: int) -> str:
        return await self.write(WITHDRAW, token, amount)

    # -- wiring --------------------------------------------------------

    async def loan_manager(self) -> str:
        return await self.read(LOAN_MANAGER)

    async def set_loan_manager(self, loan_manager: str) -> str:
        return await self.write(SET_LOAN_MANAGER, loan_manager)
