"""Notifier protocol: where watcher messages are delivered."""
from typing import Protocol


class Notifier(Protocol):
    """A channel with an audible alert path and a muted log path."""

    async def send_alert(self, message: str, subject: str = "") -> bool: ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...
