"""Role-based text dashboards."""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from ..calculations import (
    days_remaining,
    format_duration,
    format_interest_rate,
    format_price,
    format_token_amount,
    format_units,
    is_overdue,
    lp_token_amount,
    share_percentage,
    shorten_address,
)
from ..models import Loan, LoanRequest, TokenInfo
from .roles import Roles
from .sacco import SaccoService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Dashboards:
    """Render the owner, fund-manager and member views as plain text.

    Every section reads independently; a failed read is logged and its
    section shows a placeholder instead of aborting the whole page.
    """

    def __init__(
        self, service: SaccoService, clock: Callable[[], float] = time.time
    ) -> None:
        self._service = service
        self._clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _safe(what: str, read: Awaitable[T], default: T) -> T:
        try:
            return await read
        except Exception as e:
            logger.error("Error fetching %s: %s", what, e)
            return default

    @staticmethod
    def _date(timestamp: int) -> str:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")

    @staticmethod
    def _header(title: str) -> str:
        return f"━━ {title} ━━"

    async def _tokens(self) -> dict[str, TokenInfo]:
        infos = await self._safe(
            "whitelisted tokens", self._service.whitelisted_tokens(), []
        )
        return {t.address.lower(): t for t in infos}

    @staticmethod
    def _token(tokens: dict[str, TokenInfo], address: str) -> TokenInfo:
        return tokens.get(
            address.lower(),
            TokenInfo(address=address, name="Unknown", symbol=shorten_address(address)),
        )

    def _amount(self, tokens: dict[str, TokenInfo], address: str, raw: int) -> str:
        token = self._token(tokens, address)
        return f"{format_token_amount(raw, token.decimals)} {token.symbol}"

    def _request_lines(
        self, requests: list[LoanRequest], tokens: dict[str, TokenInfo], show_borrower: bool
    ) -> list[str]:
        lines: list[str] = []
        for r in requests:
            head = f"#{r.request_id} · {self._amount(tokens, r.loan_token, r.loan_amount)}"
            if show_borrower:
                head += f" · {shorten_address(r.borrower)}"
            lines.append(f"{head} · {format_duration(r.duration_days)} · {r.status}")
            for token, amount in zip(r.collateral_tokens, r.collateral_amounts):
                lines.append(f"    collateral: {self._amount(tokens, token, amount)}")
            if r.timestamp:
                lines.append(f"    requested: {self._date(r.timestamp)}")
        return lines

    def _loan_lines(self, loans: list[Loan], tokens: dict[str, TokenInfo]) -> list[str]:
        now = int(self._clock())
        lines: list[str] = []
        for loan in loans:
            status = "Active" if loan.is_active else "Closed"
            lines.append(
                f"Loan #{loan.loan_id} · {status} · "
                f"{format_interest_rate(loan.interest_rate)} interest"
            )
            lines.append(
                f"    amount: {self._amount(tokens, loan.loan_token, loan.loan_amount)}"
                f" · repaid: {self._amount(tokens, loan.loan_token, loan.total_repaid)}"
                f" · remaining: {self._amount(tokens, loan.loan_token, loan.remaining_debt)}"
            )
            if loan.is_active:
                if is_overdue(loan.start_time, loan.duration, now):
                    due = "Overdue"
                else:
                    days = days_remaining(loan.start_time, loan.duration, now)
                    due = f"{format_duration(days)} remaining"
                lines.append(f"    due: {self._date(loan.end_time)} ({due})")
        return lines

    # ------------------------------------------------------------------
    # Member
    # ------------------------------------------------------------------

    async def member(self, address: str) -> str:
        service = self._service
        tokens = await self._tokens()
        deposited_tokens, total_value, requests, loans, lp_tokens = await asyncio.gather(
            self._safe(
                "deposited tokens", service.registry.user_deposited_tokens(address), []
            ),
            self._safe(
                "portfolio value", service.registry.user_total_value_usd(address), (0, 0)
            ),
            self._safe(
                "loan requests", service.loan_manager.borrower_requests(address), []
            ),
            self._safe("loans", service.loan_manager.user_loans(address), []),
            self._safe("LP tokens", service.loan_manager.user_lp_tokens(address), []),
        )

        sections = [
            f"👤 Member {shorten_address(address)}",
            f"Portfolio value: ${format_units(total_value[0]):,.2f}",
        ]

        deposit_lines: list[str] = []
        positions = await asyncio.gather(
            *(
                self._safe(
                    f"collateral for {token}",
                    service.collateral_position(address, token),
                    None,
                )
                for token in deposited_tokens
            )
        )
        for position in positions:
            if position is None:
                continue
            token = self._token(tokens, position.token)
            deposit_lines.append(
                f"{token.symbol}: deposited {format_token_amount(position.deposited, token.decimals)}"
                f" · locked {format_token_amount(position.locked, token.decimals)}"
                f" · available {format_token_amount(position.available, token.decimals)}"
            )
        sections.append(
            self._header("Deposits") + "\n" + ("\n".join(deposit_lines) or "No deposits")
        )

        request_lines = self._request_lines(requests, tokens, show_borrower=False)
        sections.append(
            self._header("Loan requests")
            + "\n"
            + ("\n".join(request_lines) or "No loan requests")
        )

        loan_lines = self._loan_lines(loans, tokens)
        sections.append(
            self._header("Loans") + "\n" + ("\n".join(loan_lines) or "No loans")
        )

        lp_lines = await self._lp_lines(address, lp_tokens, tokens)
        sections.append(
            self._header("Liquidity positions")
            + "\n"
            + ("\n".join(lp_lines) or "No liquidity positions")
        )
        return "\n\n".join(sections)

    async def _lp_lines(
        self, address: str, lp_tokens: list[str], tokens: dict[str, TokenInfo]
    ) -> list[str]:
        manager = self._service.loan_manager
        lines: list[str] = []
        for token_address in lp_tokens:
            position, pool = await asyncio.gather(
                self._safe("LP position", manager.user_lp_position(address, token_address), None),
                self._safe("pool info", manager.pool_info(token_address), None),
            )
            if position is None or pool is None or position.shares == 0:
                continue
            token = self._token(tokens, token_address)
            share = share_percentage(position.shares, pool.total_shares)
            underlying = lp_token_amount(position.shares, pool.total_liquidity, pool.total_shares)
            lines.append(
                f"{token.symbol}: {share:.2f}% of pool · "
                f"{format_token_amount(underlying, token.decimals)} {token.symbol}"
                f" · rewards {format_token_amount(position.pending_rewards, token.decimals)}"
            )
        return lines

    # ------------------------------------------------------------------
    # Fund manager
    # ------------------------------------------------------------------

    async def fund_manager(self) -> str:
        manager = self._service.loan_manager
        tokens = await self._tokens()
        requests, supported = await asyncio.gather(
            self._safe("pending requests", manager.pending_requests(), []),
            self._safe("supported tokens", manager.supported_tokens(), []),
        )
        pending = [r for r in requests if not r.processed]

        sections = ["🏦 Fund manager"]
        request_lines = self._request_lines(pending, tokens, show_borrower=True)
        sections.append(
            self._header(f"Pending requests ({len(pending)})")
            + "\n"
            + ("\n".join(request_lines) or "No pending requests")
        )

        pools = await asyncio.gather(
            *(self._safe(f"pool {t}", manager.pool_info(t), None) for t in supported)
        )
        pool_lines: list[str] = []
        for token_address, pool in zip(supported, pools):
            if pool is None:
                continue
            token = self._token(tokens, token_address)
            status = "active" if pool.is_active else "paused"
            pool_lines.append(
                f"{token.symbol} ({status}): liquidity "
                f"{format_token_amount(pool.total_liquidity, token.decimals)}"
                f" · borrowed {format_token_amount(pool.total_borrowed, token.decimals)}"
                f" · available {format_token_amount(pool.available_liquidity, token.decimals)}"
            )
        sections.append(
            self._header("Lending pools") + "\n" + ("\n".join(pool_lines) or "No pools")
        )
        return "\n\n".join(sections)

    # ------------------------------------------------------------------
    # Owner
    # ------------------------------------------------------------------

    async def owner(self) -> str:
        service = self._service
        infos, managers, loan_manager, supported, ltv = await asyncio.gather(
            self._safe("whitelisted tokens", service.whitelisted_tokens(), []),
            self._safe("fund managers", service.registry.active_fund_managers(), []),
            self._safe("loan manager", service.registry.loan_manager(), ""),
            self._safe("supported tokens", service.loan_manager.supported_tokens(), []),
            service.loan_manager.max_ltv_ratio(),
        )
        tokens = {t.address.lower(): t for t in infos}

        sections = [
            "👑 Contract owner",
            f"Loan manager: {loan_manager or 'not set'}\nMax LTV: {ltv / 100:.2f}%",
        ]
        sections.append(
            self._header(f"Fund managers ({len(managers)})")
            + "\n"
            + ("\n".join(managers) or "No fund managers")
        )
        token_lines = [
            f"{t.symbol} ({t.name}) · {format_price(t.price)} · {t.address}" for t in infos
        ]
        sections.append(
            self._header(f"Whitelisted tokens ({len(infos)})")
            + "\n"
            + ("\n".join(token_lines) or "No whitelisted tokens")
        )
        supported_lines = [
            f"{self._token(tokens, a).symbol} · {a}" for a in supported
        ]
        sections.append(
            self._header("Supported loan tokens")
            + "\n"
            + ("\n".join(supported_lines) or "No supported loan tokens")
        )
        return "\n\n".join(sections)

    async def for_roles(self, roles: Roles) -> str:
        """Every dashboard the connected wallet is entitled to."""
        if roles.address is None:
            return "No wallet connected"
        pages: list[str] = []
        if roles.is_owner:
            pages.append(await self.owner())
        if roles.is_owner or roles.is_fund_manager:
            pages.append(await self.fund_manager())
        pages.append(await self.member(roles.address))
        return "\n\n".join(pages)
