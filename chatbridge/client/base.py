"""Interface the daemon expects from a network client."""

from __future__ import annotations

import asyncio
from typing import Protocol

from .events import ClientEvent, InboundMessage, SendResult


class NetworkClient(Protocol):
    """Protocol describing the surface required from a network client.

    The client pushes lifecycle and message events onto :attr:`events`;
    the daemon consumes them from a single loop.
    """

    events: asyncio.Queue[ClientEvent]

    async def initialize(self) -> None: ...

    async def destroy(self) -> None: ...

    async def reply(self, message: InboundMessage, text: str) -> SendResult: ...


__all__ = ["NetworkClient"]
