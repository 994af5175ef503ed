"""LoanManager: loan requests, loans, liquidity pools and liquidation."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..calculations import DEFAULT_MAX_LTV_BPS
from ..models import (
    LendingPool,
    LiquidationInfo,
    Loan,
    LoanRequest,
    LPPosition,
    PoolInfo,
)
from .base import Contract

logger = logging.getLogger(__name__)

OWNER = "function owner() view returns (address)"
ADD_SUPPORTED_TOKEN = "function addSupportedToken(address _token)"
REMOVE_SUPPORTED_TOKEN = "function removeSupportedLoanToken(address _token)"
SUPPORTED_TOKENS = "function getSupportedTokens() view returns (address[])"
MAX_LTV_RATIO = "function maxLtvRatio() view returns (uint256)"
REQUEST_LOAN = (
    "function requestLoan(address,uint256,address[],uint256[],uint256) returns (uint256)"
)
PENDING_REQUESTS = (
    "function getPendingRequests() view returns ((address borrower, address loanToken, "
    "uint256 loanAmount, address[] collateralTokens, uint256[] collateralAmounts, "
    "uint256 duration, bool approved, bool processed, uint256 timestamp)[])"
)
BORROWER_REQUESTS = (
    "function getBorrowerLoanRequests(address) view returns "
    "((address,address,uint256,address[],uint256[],uint256,bool,bool)[])"
)
USER_LOAN_REQUEST_AT = "function userLoanRequests(address, uint256) view returns (uint256)"
APPROVE_REQUEST = "function approveLoanRequest(uint256 _requestId)"
REJECT_REQUEST = "function rejectLoanRequest(uint256 _requestId)"
ADD_LIQUIDITY = "function addLiquidity(address _token, uint256 _amount)"
REMOVE_LIQUIDITY = "function removeLiquidity(address _token, uint256 _shares)"
LENDING_POOLS = (
    "function lendingPools(address) view returns "
    "(uint256 totalDeposited, uint256 totalBorrowed, uint256 availableLiquidity)"
)
POOL_INFO = (
    "function getPoolInfo(address) view returns (uint256, uint256, uint256, uint256, uint256, bool)"
)
SET_POOL_STATUS = "function setPoolStatus(address _token, bool _isActive)"
USER_LOAN_AT = "function userLoans(address, uint256) view returns (uint256)"
LOAN = (
    "function loans(uint256) view returns (address borrower, address loanToken, "
    "uint256 loanAmount, uint256 interestRate, uint256 startTime, uint256 duration, "
    "bool isActive, uint256 totalRepaid, uint256 id)"
)
LOAN_COUNT = "function loanCount() view returns (uint256)"
REPAY_LOAN = "function repayLoan(uint256 _loanId, uint256 _amount)"
LIQUIDATE_LOAN = "function liquidateLoan(uint256 _loanId)"
IS_LIQUIDATABLE = "function isLoanLiquidatable(uint256 _loanId) view returns (bool)"
LIQUIDATION_INFO = (
    "function getLiquidationInfo(uint256 _loanId) view returns (uint256, uint256, uint256, uint256)"
)
USER_LP_TOKENS = "function getUserLPTokens(address) view returns (address[])"
USER_LP_POSITION = (
    "function getUserLPPosition(address, address) view returns (uint256, uint256, uint256)"
)

# userLoans is a mapping of arrays; the contract exposes no length getter.
MAX_USER_LOAN_SLOTS = 5


def _to_request(request_id: int, raw: tuple[Any, ...]) -> LoanRequest:
    borrower, loan_token, loan_amount, tokens, amounts, duration, approved, processed = raw[:8]
    return LoanRequest(
        request_id=request_id,
        borrower=borrower,
        loan_token=loan_token,
        loan_amount=loan_amount,
        collateral_tokens=tuple(tokens),
        collateral_amounts=tuple(amounts),
        duration=duration,
        approved=approved,
        processed=processed,
        timestamp=raw[8] if len(raw) > 8 else 0,
    )


class LoanManager(Contract):
    """Read and write hooks for the loan manager."""

    async def owner(self) -> str:
        return await self.read(OWNER)

    # -- supported tokens ----------------------------------------------

    async def supported_tokens(self) -> list[str]:
        return list(await self.read(SUPPORTED_TOKENS))

    async def add_supported_token(self, token: str) -> str:
        return await self.write(ADD_SUPPORTED_TOKEN, token)

    async def remove_supported_token(self, token: str) -> str:
        return await self.write(REMOVE_SUPPORTED_TOKEN, token)

    async def max_ltv_ratio(self) -> int:
        """Max LTV in basis points, falling back to the contract default."""
        try:
            return await self.read(MAX_LTV_RATIO)
        except Exception as e:
            logger.error("Error fetching max LTV ratio: %s", e)
            return DEFAULT_MAX_LTV_BPS

    # -- requests ------------------------------------------------------

    async def request_loan(
        self,
        loan_token: str,
        loan_amount: int,
        collateral_tokens: list[str],
        collateral_amounts: list[int],
        duration_seconds: int,
    ) -> str:
        return await self.write(
            REQUEST_LOAN,
            loan_token,
            loan_amount,
            collateral_tokens,
            collateral_amounts,
            duration_seconds,
        )

    async def pending_requests(self) -> list[LoanRequest]:
        """Pending requests; the id of each is its index in the returned list."""
        raw = await self.read(PENDING_REQUESTS)
        return [_to_request(i, r) for i, r in enumerate(raw)]

    async def borrower_requests(self, borrower: str) -> list[LoanRequest]:
        raw = await self.read(BORROWER_REQUESTS, borrower)
        return [_to_request(i, r) for i, r in enumerate(raw)]

    async def approve_request(self, request_id: int) -> str:
        return await self.write(APPROVE_REQUEST, request_id)

    async def reject_request(self, request_id: int) -> str:
        return await self.write(REJECT_REQUEST, request_id)

    # -- loans ---------------------------------------------------------

    async def loan_count(self) -> int:
        return await self.read(LOAN_COUNT)

    async def loan(self, loan_id: int) -> Loan:
        (
            borrower,
            loan_token,
            loan_amount,
            interest_rate,
            start_time,
            duration,
            is_active,
            total_repaid,
            onchain_id,
        ) = await self.read(LOAN, loan_id)
        return Loan(
            loan_id=onchain_id or loan_id,
            borrower=borrower,
            loan_token=loan_token,
            loan_amount=loan_amount,
            interest_rate=interest_rate,
            start_time=start_time,
            duration=duration,
            is_active=is_active,
            total_repaid=total_repaid,
        )

    async def user_loan_ids(self, user: str) -> list[int]:
        """Loan ids at slots 0..4, fetched in parallel; reverting slots are skipped."""
        results = await asyncio.gather(
            *(self.read(USER_LOAN_AT, user, i) for i in range(MAX_USER_LOAN_SLOTS)),
            return_exceptions=True,
        )
        ids: list[int] = []
        for slot, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.debug("userLoans(%s, %d) unavailable: %s", user, slot, result)
                continue
            ids.append(result)
        return ids

    async def user_loans(self, user: str) -> list[Loan]:
        ids = await self.user_loan_ids(user)
        results = await asyncio.gather(
            *(self.loan(loan_id) for loan_id in ids), return_exceptions=True
        )
        loans: list[Loan] = []
        for loan_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.error("Error loading loan #%d: %s", loan_id, result)
                continue
            loans.append(result)
        return loans

    async def repay_loan(self, loan_id: int, amount: int) -> str:
        return await self.write(REPAY_LOAN, loan_id, amount)

    async def liquidate_loan(self, loan_id: int) -> str:
        return await self.write(LIQUIDATE_LOAN, loan_id)

    async def is_liquidatable(self, loan_id: int) -> bool:
        return await self.read(IS_LIQUIDATABLE, loan_id)

    async def liquidation_info(self, loan_id: int) -> LiquidationInfo:
        collateral_value, debt_value, current_ltv, threshold = await self.read(
            LIQUIDATION_INFO, loan_id
        )
        return LiquidationInfo(
            collateral_value=collateral_value,
            debt_value=debt_value,
            current_ltv=current_ltv,
            liquidation_threshold=threshold,
        )

    # -- pools ---------------------------------------------------------

    async def add_liquidity(self, token: str, amount: int) -> str:
        return await self.write(ADD_LIQUIDITY, token, amount)

    async def remove_liquidity(self, token: str, shares: int) -> str:
        return await self.write(REMOVE_LIQUIDITY, token, shares)

    async def lending_pool(self, token: str) -> LendingPool:
        deposited, borrowed, available = await self.read(LENDING_POOLS, token)
        return LendingPool(
            total_deposited=deposited,
            total_borrowed=borrowed,
            available_liquidity=available,
        )

    async def pool_info(self, token: str) -> PoolInfo:
        liquidity, borrowed, available, shares, utilization, active = await self.read(
            POOL_INFO, token
        )
        return PoolInfo(
            total_liquidity=liquidity,
            total_borrowed=borrowed,
            available_liquidity=available,
            total_shares=shares,
            utilization=utilization,
            is_active=active,
        )

    async def set_pool_status(self, token: str, is_active: bool) -> str:
        return await self.write(SET_POOL_STATUS, token, is_active)

    async def user_lp_tokens(self, user: str) -> list[str]:
        return list(await self.read(USER_LP_TOKENS, user))

    async def user_lp_position(self, user: str, token: str) -> LPPosition:
        shares, deposit_time, rewards = await self.read(USER_LP_POSITION, user, token)
        return LPPosition(shares=shares, deposit_time=deposit_time, pending_rewards=rewards)
