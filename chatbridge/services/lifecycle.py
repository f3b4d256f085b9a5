"""Translate network client events into session transitions."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable, Coroutine
from typing import Any, TextIO

import qrcode
from qrcode.exceptions import DataOverflowError

from ..client.base import NetworkClient
from ..client.events import (
    Authenticated,
    AuthFailure,
    ClientEvent,
    CredentialIssued,
    Disconnected,
    InboundMessage,
    MessageReceived,
    Ready,
)
from ..state.context import RuntimeState
from ..state.session import SessionEvent
from .dispatcher import MessageDispatcher

logger = logging.getLogger("chatbridge.lifecycle")

QRRenderer = Callable[[str], None]


class ConsoleQRRenderer:
    """Print a pairing code as a terminal QR code."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def __call__(self, code: str) -> None:
        stream = self._stream or sys.stdout
        qr = qrcode.QRCode(border=1)
        qr.add_data(code)
        qr.make(fit=True)
        qr.print_ascii(out=stream)
        stream.flush()


class LifecycleAdapter:
    """Single consumer of the client's event queue.

    Lifecycle events become store transitions synchronously. Inbound
    messages are handed to the dispatcher as background tasks owned by the
    adapter's task group, so a slow reply never holds up the next event.
    """

    def __init__(
        self,
        state: RuntimeState,
        client: NetworkClient,
        dispatcher: MessageDispatcher,
        *,
        renderer: QRRenderer | None = None,
        on_client_exit: Callable[[], None] | None = None,
    ) -> None:
        self.state = state
        self.client = client
        self.dispatcher = dispatcher
        self.renderer = renderer
        self.on_client_exit = on_client_exit
        self._task_group: asyncio.TaskGroup | None = None

    async def __aenter__(self) -> LifecycleAdapter:
        self._task_group = asyncio.TaskGroup()
        await self._task_group.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        task_group, self._task_group = self._task_group, None
        if task_group is not None:
            await task_group.__aexit__(exc_type, exc_val, exc_tb)

    def schedule_background(
        self,
        coroutine: Coroutine[Any, Any, Any],
        *,
        name: str | None = None,
    ) -> asyncio.Task[Any]:
        if self._task_group is None:
            coroutine.close()
            raise RuntimeError("LifecycleAdapter context not entered")
        return self._task_group.create_task(coroutine, name=name)

    async def run(self) -> None:
        """Consume client events until cancelled."""
        async with self:
            while True:
                event = await self.client.events.get()
                self.handle_event(event)

    def handle_event(self, event: ClientEvent) -> None:
        session = self.state.session
        match event:
            case CredentialIssued(code=code):
                logger.info("Pairing code received; scan it to link the account")
                session.apply_transition(SessionEvent.CREDENTIAL_ISSUED, code)
                self._render(code)
            case Authenticated():
                logger.info("Pairing code accepted")
                session.apply_transition(SessionEvent.AUTHENTICATED)
            case Ready():
                logger.info("Client is ready")
                session.apply_transition(SessionEvent.READY)
            case AuthFailure(reason=reason):
                logger.error("Authentication failed: %s", reason or "no reason given")
                session.apply_transition(SessionEvent.AUTH_FAILURE, reason or None)
            case Disconnected(reason=reason, process_exited=process_exited):
                logger.warning("Client disconnected: %s", reason or "no reason given")
                session.apply_transition(SessionEvent.DISCONNECTED, reason or None)
                if process_exited and self.on_client_exit is not None:
                    self.on_client_exit()
            case MessageReceived(message=message):
                self._schedule_dispatch(message)
            case _:
                logger.warning("Ignoring unsupported client event %r", event)

    def _schedule_dispatch(self, message: InboundMessage) -> None:
        self.schedule_background(
            self.dispatcher.dispatch(message),
            name=f"dispatch-{message.id or 'message'}",
        )

    def _render(self, code: str) -> None:
        if self.renderer is None:
            return
        try:
            self.renderer(code)
        except (DataOverflowError, OSError, ValueError) as exc:
            logger.warning("Could not render pairing code on console: %s", exc)


__all__ = ["ConsoleQRRenderer", "LifecycleAdapter", "QRRenderer"]
