"""Forward registry events to notification channels."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ..calculations import format_token_amount, shorten_address
from ..contracts.events import EventFeed
from ..interfaces.chain import ChainClient
from ..interfaces.notifier import Notifier
from ..models import ContractEvent, TokenInfo
from .messages import MessageBoard

logger = logging.getLogger(__name__)

# Roster and whitelist changes go out as audible alerts; the rest as muted logs.
ALERT_EVENTS = frozenset({"FundManagerAdded", "FundManagerRemoved", "TokenWhitelisted"})
ALERT_SUBJECT = "BlockCoop admin change"


class EventWatcher:
    """Poll the registry event feed and fan out one message per new transaction."""

    def __init__(
        self,
        feed: EventFeed,
        client: ChainClient,
        notifiers: list[Notifier] | None = None,
        board: MessageBoard | None = None,
        tokens: dict[str, TokenInfo] | None = None,
        lookback_blocks: int = 1000,
        interval_seconds: int = 30,
    ) -> None:
        self._feed = feed
        self._client = client
        self._notifiers = notifiers or []
        self._board = board
        self._tokens = {k.lower(): v for k, v in (tokens or {}).items()}
        self._lookback = lookback_blocks
        self._interval = interval_seconds
        self._next_block: int | None = None
        self._processed: set[str] = set()

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def _amount(self, token: str, raw: int) -> str:
        info = self._tokens.get(token.lower())
        if info is None:
            return f"{format_token_amount(raw)} {shorten_address(token)}"
        return f"{format_token_amount(raw, info.decimals)} {info.symbol}"

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def format_event(self, event: ContractEvent) -> str:
        args = event.args
        if event.name == "FundManagerAdded":
            text = f"👤 Fund manager added: {args['fundManager']}"
        elif event.name == "FundManagerRemoved":
            text = f"👤 Fund manager removed: {args['fundManager']}"
        elif event.name == "TokenWhitelisted":
            text = (
                f"🪙 Token whitelisted: {args['tokenAddress']}\n"
                f"Price feed: {args['priceFeed']}"
            )
        elif event.name == "Deposit":
            text = (
                f"💰 Deposit of {self._amount(args['tokenAddress'], args['amount'])}"
                f" by {shorten_address(args['user'])}"
            )
        elif event.name == "Withdraw":
            text = (
                f"💸 Withdrawal of {self._amount(args['tokenAddress'], args['amount'])}"
                f" by {shorten_address(args['user'])}"
            )
        else:
            text = f"📣 {event.name}"
        return (
            f"{text}\n\n"
            f"Block {event.block_number} · tx {shorten_address(event.transaction_hash)}\n"
            f"{self._now_str()} UTC"
        )

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _dispatch(self, event: ContractEvent, message: str) -> None:
        alert = event.name in ALERT_EVENTS
        for notifier in self._notifiers:
            try:
                if alert:
                    await notifier.send_alert(message, subject=ALERT_SUBJECT)
                else:
                    await notifier.send_log(message, silent=True)
            except Exception as e:
                logger.error("Notifier %s failed: %s", type(notifier).__name__, e)
        if self._board is not None:
            self._board.show_success(message)

    async def poll_once(self) -> list[ContractEvent]:
        """Fetch events since the last poll; returns the ones not seen before."""
        latest = await self._client.get_block_number()
        if self._next_block is None:
            self._next_block = max(0, latest - self._lookback)
        if latest < self._next_block:
            return []

        events = await self._feed.fetch(self._next_block, latest)
        self._next_block = latest + 1

        fresh: list[ContractEvent] = []
        batch: set[str] = set()
        for event in events:
            key = event.transaction_hash.lower()
            if key in batch or key in self._processed:
                continue
            batch.add(key)
            fresh.append(event)
            logger.info("%s in tx %s", event.name, event.transaction_hash)
            await self._dispatch(event, self.format_event(event))
        # Ranges never overlap; remember only the latest batch.
        self._processed = batch
        return fresh

    async def run_continuous(self, interval_seconds: int | None = None) -> None:
        """Poll forever."""
        interval = interval_seconds or self._interval
        logger.info("Watching registry events (every %d seconds)", interval)

        while True:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error("Error in event watch loop: %s", e)
            await asyncio.sleep(interval)
