"""Inbound message dispatch for the chat bridge."""

from __future__ import annotations

import enum
import logging
import time
from typing import Protocol

from ..client.base import NetworkClient
from ..client.events import InboundMessage, SendResult
from ..state.context import RuntimeState

logger = logging.getLogger("chatbridge.dispatcher")


class Responder(Protocol):
    def respond(self, body: str) -> str | None: ...


class DispatchOutcome(enum.StrEnum):
    FILTERED = "filtered"
    IGNORED = "ignored"
    REPLIED = "replied"
    FAILED = "failed"


class MessageDispatcher:
    """Route inbound messages to the responder and send its reply.

    Every failure is contained per message: it is logged, counted in
    :class:`~chatbridge.state.context.DispatchStats` and reported as
    :attr:`DispatchOutcome.FAILED`; nothing propagates to the caller.
    """

    def __init__(self, state: RuntimeState, responder: Responder, client: NetworkClient) -> None:
        self.state = state
        self.responder = responder
        self.client = client

    def _fail(self, message: InboundMessage | None, error: str) -> DispatchOutcome:
        stats = self.state.dispatch_stats
        stats.failed += 1
        stats.last_error = error
        logger.error(
            "Failed to handle message: %s",
            error,
            extra={"sender": getattr(message, "sender", None)},
        )
        return DispatchOutcome.FAILED

    async def dispatch(self, message: InboundMessage) -> DispatchOutcome:
        stats = self.state.dispatch_stats
        stats.received += 1
        stats.last_message_unix = time.time()

        if not isinstance(message, InboundMessage) or not isinstance(message.body, str):
            return self._fail(None, f"malformed message: {message!r}")

        if message.sender == self.state.broadcast_sender:
            stats.filtered += 1
            logger.debug("Ignoring broadcast message %s", message.id or "<no id>")
            return DispatchOutcome.FILTERED

        logger.info("Message from %s: %s", message.sender, message.body)

        try:
            reply = self.responder.respond(message.body)
        except Exception as exc:
            return self._fail(message, f"responder error: {exc.__class__.__name__}: {exc}")

        if reply is None:
            stats.ignored += 1
            return DispatchOutcome.IGNORED

        try:
            result = await self.client.reply(message, reply)
        except Exception as exc:
            result = SendResult.failure(exc)

        if not result.ok:
            return self._fail(message, f"reply failed: {result.error}")

        stats.replied += 1
        logger.debug("Replied to %s", message.sender)
        return DispatchOutcome.REPLIED


__all__ = ["DispatchOutcome", "MessageDispatcher", "Responder"]
