"""Pure derived-value helpers: no I/O.

On-chain prices are USD scaled by 1e18 and LTV ratios are in basis points.
Token amounts travel as raw integers (smallest unit) and are only turned into
``Decimal`` for display or for USD arithmetic.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .models import SECONDS_PER_DAY

WAD = 10**18
BPS_DENOMINATOR = 10_000
DEFAULT_MAX_LTV_BPS = 7000

# Loan durations offered to members, in days.
LOAN_DURATION_OPTIONS: dict[int, str] = {
    7: "1 week",
    14: "2 weeks",
    30: "1 month",
    90: "3 months",
    180: "6 months",
    365: "1 year",
}
MIN_LOAN_DURATION_DAYS = 7


# ---------------------------------------------------------------------------
# Collateral / borrowing
# ---------------------------------------------------------------------------


def available_collateral(deposit: int | None, locked: int | None) -> int:
    """Deposited amount not locked against loan requests, never negative."""
    return max(0, (deposit or 0) - (locked or 0))


def max_borrow_amount(
    collateral_amount: Decimal,
    collateral_price: int | None,
    loan_price: int | None,
    max_ltv_bps: int = DEFAULT_MAX_LTV_BPS,
) -> Decimal:
    """Maximum loan-token amount borrowable against ``collateral_amount``.

    collateral_value_usd = amount * collateral_price / 1e18
    max_borrow = collateral_value_usd * ltv / 10000 / (loan_price / 1e18)

    Returns zero when either price is missing or zero.
    """
    if not collateral_price or not loan_price or collateral_amount <= 0:
        return Decimal(0)
    numerator = Decimal(collateral_amount) * collateral_price * max_ltv_bps
    return numerator / (Decimal(loan_price) * BPS_DENOMINATOR)


def usd_value(raw_amount: int, decimals: int, price: int | None) -> Decimal:
    """USD value of a raw token amount at a 1e18-scaled price."""
    if not price:
        return Decimal(0)
    return format_units(raw_amount, decimals) * price / WAD


def share_percentage(user_shares: int, total: int) -> float:
    """User share of a pool as a percentage with two-decimal precision."""
    if total <= 0:
        return 0.0
    return (user_shares * 10_000 // total) / 100


def lp_token_amount(shares: int, total_liquidity: int, total_shares: int) -> int:
    """Underlying token amount represented by LP ``shares``."""
    if total_shares <= 0:
        return 0
    return shares * total_liquidity // total_shares


def remaining_debt(loan_amount: int, total_repaid: int) -> int:
    return max(0, loan_amount - total_repaid)


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


def duration_seconds(days: int) -> int:
    return days * SECONDS_PER_DAY


def is_overdue(start_time: int, duration: int, now: int) -> bool:
    return now > start_time + duration


def days_remaining(start_time: int, duration: int, now: int) -> int:
    """Whole days until the loan is due; zero once overdue."""
    if is_overdue(start_time, duration, now):
        return 0
    return (start_time + duration - now) // SECONDS_PER_DAY


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_duration(days: int) -> str:
    """Render a day count as weeks and days.

    Examples:
        0 → "0 days", 7 → "1 week", 10 → "1 week, 3 days"
    """
    weeks, rest = divmod(days, 7)
    if weeks == 0:
        return _plural(rest, "day")
    if rest == 0:
        return _plural(weeks, "week")
    return f"{_plural(weeks, 'week')}, {_plural(rest, 'day')}"


# ---------------------------------------------------------------------------
# Units and display
# ---------------------------------------------------------------------------


def format_units(raw_amount: int, decimals: int = 18) -> Decimal:
    """Raw integer amount → token units."""
    return Decimal(int(raw_amount)).scaleb(-decimals)


def parse_units(amount: str | Decimal | int, decimals: int = 18) -> int:
    """Token units → raw integer amount.

    Raises:
        ValueError: unparseable input or more fractional digits than
            ``decimals`` allows.
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def format_token_amount(raw_amount: int, decimals: int = 18) -> str:
    """Grouped amount with between 2 and 6 fractional digits."""
    value = format_units(raw_amount, decimals).quantize(
        Decimal("0.000001"), rounding=ROUND_HALF_UP
    )
    whole, frac = f"{value:,.6f}".split(".")
    frac = frac.rstrip("0").ljust(2, "0")
    return f"{whole}.{frac}"


def format_price(price: int | None) -> str:
    """1e18-scaled USD price → "$1.234567"."""
    if not price:
        return "$0.000000"
    return f"${format_units(price):.6f}"


def format_usd(value: Decimal | float) -> str:
    return f"${Decimal(value):,.2f}"


def format_interest_rate(rate_bps: int) -> str:
    return f"{rate_bps / 100:.2f}%"


def shorten_address(address: str) -> str:
    """'0x1234567890abcdef...' → '0x1234...cdef'."""
    if len(address) > 10:
        return f"{address[:6]}...{address[-4:]}"
    return address
