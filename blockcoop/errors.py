"""Exception types and user-facing error messages."""
from __future__ import annotations

import re


class BlockCoopError(Exception):
    """Base class for all client errors."""

    # Set once a workflow has turned the error into user-facing text.
    friendly: str | None = None


class RpcError(BlockCoopError):
    """JSON-RPC error response, or no endpoint reachable."""


class TransactionError(BlockCoopError):
    """A transaction could not be built, signed or submitted."""


class TransactionReverted(TransactionError):
    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"Transaction {tx_hash} reverted")
        self.tx_hash = tx_hash


class ConfirmationTimeout(TransactionError):
    """The transaction (or its expected effect) did not land in time."""


class AccessDenied(BlockCoopError):
    pass


class ValidationError(BlockCoopError, ValueError):
    """Invalid user input, rejected before anything is sent."""


# (pattern, user-facing text); first match wins within a table.
MessageTable = tuple[tuple[str, str], ...]

FUND_MANAGER_MESSAGES: MessageTable = (
    (r"Already a fund manager", "This address is already registered as a fund manager"),
    (r"ERR_ZERO_ADDRESS", "Cannot add zero address as a fund manager"),
)

LOAN_REQUEST_MESSAGES: MessageTable = (
    (
        r"Insufficient available balance",
        "Insufficient balance. This could be due to:\n"
        "• Not enough collateral deposited\n"
        "• Some collateral is already locked in other loans\n"
        "• Insufficient liquidity in the lending pool\n"
        "• Transaction still processing\n\n"
        "Please wait a moment and try again, or check your available collateral balance.",
    ),
    (
        r"User is not authorized",
        "You are not authorized to request loans. Please contact support.",
    ),
    (r"Token not supported", "The selected token is not supported for loans."),
    (
        r"Insufficient liquidity",
        "The lending pool doesn't have enough liquidity for this loan amount.",
    ),
)

# HTTP status codes only count as standalone tokens, never inside hex.
TRANSPORT_MESSAGES: MessageTable = (
    (
        r"\b403\b|Forbidden",
        "RPC access forbidden. Please check your RPC endpoint credentials.",
    ),
    (
        r"\b401\b|Unauthorized",
        "Unauthorized. Please check your wallet configuration and permissions.",
    ),
)


def friendly_error(
    message: str,
    messages: MessageTable = (),
    default: str = "Transaction failed",
) -> str:
    """Map raw revert / transport text through ``messages``, then the transport table."""
    if not message:
        return default
    for pattern, friendly in messages + TRANSPORT_MESSAGES:
        if re.search(pattern, message):
            return friendly
    return message


def describe_error(
    error: BlockCoopError,
    messages: MessageTable = (),
    default: str = "Transaction failed",
) -> str:
    """User-facing text for ``error``.

    Only RPC and submission failures carry raw node text worth mapping; the
    client's own messages (validation, access, timeouts) are shown as is.
    """
    if error.friendly:
        return error.friendly
    if isinstance(error, ConfirmationTimeout) or not isinstance(
        error, (RpcError, TransactionError)
    ):
        return str(error) or default
    return friendly_error(str(error), messages, default)
