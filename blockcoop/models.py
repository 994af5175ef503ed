"""Data models: all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class TokenInfo:
    """Whitelisted token as reported by the registry. ``price`` is USD x 1e18."""

    address: str
    name: str
    symbol: str
    decimals: int = 18
    price: int = 0


@dataclass(frozen=True)
class UserDeposit:
    amount: int = 0
    timestamp: int = 0


@dataclass(frozen=True)
class CollateralPosition:
    """Deposit, locked and available balance for one (user, token) pair."""

    token: str
    deposited: int
    locked: int
    available: int


@dataclass(frozen=True)
class LoanRequest:
    request_id: int
    borrower: str
    loan_token: str
    loan_amount: int
    collateral_tokens: tuple[str, ...]
    collateral_amounts: tuple[int, ...]
    duration: int
    approved: bool = False
    processed: bool = False
    timestamp: int = 0

    @property
    def status(self) -> str:
        if not self.processed:
            return "Pending"
        return "Approved" if self.approved else "Rejected"

    @property
    def duration_days(self) -> int:
        return self.duration // SECONDS_PER_DAY


@dataclass(frozen=True)
class Loan:
    loan_id: int
    borrower: str
    loan_token: str
    loan_amount: int
    interest_rate: int
    start_time: int
    duration: int
    is_active: bool
    total_repaid: int = 0

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration

    @property
    def remaining_debt(self) -> int:
        return max(0, self.loan_amount - self.total_repaid)


@dataclass(frozen=True)
class PoolInfo:
    total_liquidity: int
    total_borrowed: int
    available_liquidity: int
    total_shares: int
    utilization: int
    is_active: bool


@dataclass(frozen=True)
class LendingPool:
    total_deposited: int
    total_borrowed: int
    available_liquidity: int


@dataclass(frozen=True)
class LPPosition:
    shares: int = 0
    deposit_time: int = 0
    pending_rewards: int = 0


@dataclass(frozen=True)
class LiquidationInfo:
    collateral_value: int
    debt_value: int
    current_ltv: int
    liquidation_threshold: int


@dataclass(frozen=True)
class ContractEvent:
    """Decoded log entry."""

    name: str
    transaction_hash: str
    block_number: int
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionReceipt:
    transaction_hash: str
    status: int
    block_number: int
    gas_used: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == 1
