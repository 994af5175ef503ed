"""Command-line interface for the BlockCoop SACCO client."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .calculations import LOAN_DURATION_OPTIONS
from .config import AppConfig, load_config
from .errors import BlockCoopError, describe_error
from .interfaces.notifier import Notifier
from .logging_setup import configure_logging
from .notifications import TelegramNotifier
from .services import Dashboards, EventWatcher, SaccoService
from .services.messages import SUCCESS
from .services.roles import MANAGER, OWNER, require_access


def _bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("true", "yes", "on", "1", "active"):
        return True
    if lowered in ("false", "no", "off", "0", "inactive", "paused"):
        return False
    raise argparse.ArgumentTypeError(f"expected true/false, got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="blockcoop",
        description="BlockCoop SACCO client: deposits, loans and liquidity on Celo",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("role", help="Show the roles held by the configured wallet")

    dashboard = sub.add_parser("dashboard", help="Show role-based dashboards")
    dashboard.add_argument(
        "view",
        nargs="?",
        choices=["owner", "fund-manager", "member"],
        default=None,
        help="Single view to render (default: every view the wallet may see)",
    )
    dashboard.add_argument("--address", default=None, help="Member address to inspect")

    # Member
    deposit = sub.add_parser("deposit", help="Deposit tokens into the SACCO")
    deposit.add_argument("token", help="Token symbol or address")
    deposit.add_argument("amount", help="Amount in token units, e.g. 12.5")

    withdraw = sub.add_parser("withdraw", help="Withdraw available (unlocked) tokens")
    withdraw.add_argument("token")
    withdraw.add_argument("amount")

    request = sub.add_parser("request-loan", help="Request a collateralised loan")
    request.add_argument("loan_token")
    request.add_argument("amount")
    request.add_argument("collateral_token")
    request.add_argument("collateral_amount")
    request.add_argument(
        "--days",
        type=int,
        default=30,
        choices=sorted(LOAN_DURATION_OPTIONS),
        help="Loan duration in days (default: 30)",
    )

    repay = sub.add_parser("repay", help="Repay part or all of a loan")
    repay.add_argument("loan_id", type=int)
    repay.add_argument("amount")

    # Fund manager
    for name, help_text in (
        ("approve-request", "Approve a pending loan request"),
        ("reject-request", "Reject a pending loan request"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("request_id", type=int)

    liquidate = sub.add_parser("liquidate", help="Liquidate an under-collateralised loan")
    liquidate.add_argument("loan_id", type=int)

    add_liq = sub.add_parser("add-liquidity", help="Provide liquidity to a lending pool")
    add_liq.add_argument("token")
    add_liq.add_argument("amount")

    remove_liq = sub.add_parser("remove-liquidity", help="Withdraw LP shares")
    remove_liq.add_argument("token")
    remove_liq.add_argument("shares")

    pool_status = sub.add_parser("set-pool-status", help="Activate or pause a pool")
    pool_status.add_argument("token")
    pool_status.add_argument("active", type=_bool)

    # Owner
    for name, help_text in (
        ("add-fund-manager", "Register a fund manager"),
        ("remove-fund-manager", "Remove a fund manager"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("address")

    whitelist = sub.add_parser("whitelist-token", help="Whitelist a deposit token")
    whitelist.add_argument("token", help="Token address")
    whitelist.add_argument("price_feed", help="Price feed address")
    whitelist.add_argument("--stable", action="store_true", help="Mark as stablecoin")

    for name, help_text in (
        ("unwhitelist-token", "Remove a token from the whitelist"),
        ("add-supported-token", "Allow a token to be borrowed"),
        ("remove-supported-token", "Stop lending a token"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("token")

    set_lm = sub.add_parser("set-loan-manager", help="Point the registry at a loan manager")
    set_lm.add_argument("address")

    watch = sub.add_parser("watch", help="Forward registry events to notifiers")
    watch.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Poll interval in seconds (overrides config)",
    )

    return parser


def _print_message(kind: str, text: str) -> None:
    if kind == SUCCESS:
        print(text)


def _notifiers(config: AppConfig) -> list[Notifier]:
    notifiers: list[Notifier] = []
    if config.notifications.telegram.enabled:
        notifiers.append(TelegramNotifier(config.notifications.telegram))
    return notifiers


async def _show_dashboard(service: SaccoService, args: argparse.Namespace) -> None:
    dashboards = Dashboards(service)
    roles = await service.roles()
    if args.view is None and args.address is None:
        print(await dashboards.for_roles(roles))
        return

    if args.view == "owner":
        require_access(roles, OWNER, "Owner dashboard")
        print(await dashboards.owner())
    elif args.view == "fund-manager":
        require_access(roles, MANAGER, "Fund manager dashboard")
        print(await dashboards.fund_manager())
    else:
        address = args.address or roles.address
        if address is None:
            raise BlockCoopError("No wallet connected; pass --address to inspect a member")
        print(await dashboards.member(address))


async def _watch(service: SaccoService, config: AppConfig, interval: int | None) -> None:
    tokens = {t.address: t for t in await service.whitelisted_tokens()}
    watcher = EventWatcher(
        service.events,
        service.client,
        notifiers=_notifiers(config),
        board=service.board,
        tokens=tokens,
        lookback_blocks=config.watch.lookback_blocks,
        interval_seconds=config.watch.interval_seconds,
    )
    await watcher.run_continuous(interval)


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    service = SaccoService(config)
    service.board.subscribe(_print_message)

    command = args.command
    if command == "role":
        roles = await service.roles()
        print(f"Address: {roles.address or 'not connected'}")
        print(f"Roles: {', '.join(roles.names) or 'none'}")
    elif command == "dashboard":
        await _show_dashboard(service, args)
    elif command == "deposit":
        await service.deposit(args.token, args.amount)
    elif command == "withdraw":
        await service.withdraw(args.token, args.amount)
    elif command == "request-loan":
        await service.request_loan(
            args.loan_token, args.amount, args.collateral_token, args.collateral_amount, args.days
        )
    elif command == "repay":
        await service.repay(args.loan_id, args.amount)
    elif command == "approve-request":
        await service.approve_request(args.request_id)
    elif command == "reject-request":
        await service.reject_request(args.request_id)
    elif command == "liquidate":
        await service.liquidate(args.loan_id)
    elif command == "add-liquidity":
        await service.add_liquidity(args.token, args.amount)
    elif command == "remove-liquidity":
        await service.remove_liquidity(args.token, args.shares)
    elif command == "set-pool-status":
        await service.set_pool_status(args.token, args.active)
    elif command == "add-fund-manager":
        await service.add_fund_manager(args.address)
    elif command == "remove-fund-manager":
        await service.remove_fund_manager(args.address)
    elif command == "whitelist-token":
        await service.whitelist_token(args.token, args.price_feed, args.stable)
    elif command == "unwhitelist-token":
        await service.unwhitelist_token(args.token)
    elif command == "set-loan-manager":
        await service.set_loan_manager(args.address)
    elif command == "add-supported-token":
        await service.add_supported_token(args.token)
    elif command == "remove-supported-token":
        await service.remove_supported_token(args.token)
    elif command == "watch":
        await _watch(service, config, args.interval)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except BlockCoopError as e:
        print(f"Error: {describe_error(e)}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)
