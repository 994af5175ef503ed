"""Transient success / error messages that clear themselves after a delay."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"

Listener = Callable[[str, str], None]


class MessageBoard:
    """One success slot and one error slot, each cleared ``ttl_seconds`` after
    the last time it was set.

    Showing a message again (identical or not) replaces the slot and restarts
    its timer, so repeated calls never stack. Outside a running event loop
    messages stay until cleared explicitly.
    """

    def __init__(self, ttl_seconds: float = 5.0) -> None:
        self.ttl_seconds = ttl_seconds
        self._messages: dict[str, str | None] = {SUCCESS: None, ERROR: None}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._listeners: list[Listener] = []

    @property
    def success(self) -> str | None:
        return self._messages[SUCCESS]

    @property
    def error(self) -> str | None:
        return self._messages[ERROR]

    def subscribe(self, listener: Listener) -> None:
        """Call ``listener(kind, text)`` whenever a message is shown."""
        self._listeners.append(listener)

    def show_success(self, text: str) -> None:
        logger.info(text)
        self._show(SUCCESS, text)

    def show_error(self, text: str) -> None:
        logger.error(text)
        self._show(ERROR, text)

    def clear(self, kind: str | None = None) -> None:
        for k in (kind,) if kind else (SUCCESS, ERROR):
            handle = self._timers.pop(k, None)
            if handle is not None:
                handle.cancel()
            self._messages[k] = None

    def _show(self, kind: str, text: str) -> None:
        self._messages[kind] = text
        self._schedule_clear(kind)
        for listener in self._listeners:
            try:
                listener(kind, text)
            except Exception as e:
                logger.error("Message listener failed: %s", e)

    def _schedule_clear(self, kind: str) -> None:
        handle = self._timers.pop(kind, None)
        if handle is not None:
            handle.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timers[kind] = loop.call_later(self.ttl_seconds, self._expire, kind)

    def _expire(self, kind: str) -> None:
        self._timers.pop(kind, None)
        self._messages[kind] = None
