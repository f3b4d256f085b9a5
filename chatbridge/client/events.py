"""Typed events and results exchanged with the network client."""

from __future__ import annotations

from typing import Annotated, Union

import msgspec


class InboundMessage(msgspec.Struct, frozen=True):
    """Message received from the messaging network."""

    sender: str
    body: str
    id: str = ""
    timestamp: float = 0.0


class ClientEventBase(msgspec.Struct, frozen=True, tag_field="type"):
    """Base for lifecycle events pushed by the network client."""


class Started(ClientEventBase, tag="started"):
    """Helper is up and about to launch the browser."""


class CredentialIssued(ClientEventBase, tag="qr"):
    code: Annotated[str, msgspec.Meta(min_length=1)]


class Authenticated(ClientEventBase, tag="authenticated"):
    pass


class Ready(ClientEventBase, tag="ready"):
    pass


class AuthFailure(ClientEventBase, tag="auth_failure"):
    reason: str = ""


class Disconnected(ClientEventBase, tag="disconnected"):
    reason: str = ""
    # Set when the helper process itself went away and must be relaunched.
    process_exited: bool = False


class MessageReceived(ClientEventBase, tag="message"):
    message: InboundMessage


ClientEvent = Union[
    Started,
    CredentialIssued,
    Authenticated,
    Ready,
    AuthFailure,
    Disconnected,
    MessageReceived,
]


class SendResult(msgspec.Struct, frozen=True):
    """Outcome of an outbound send."""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> SendResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str | BaseException) -> SendResult:
        if isinstance(error, BaseException):
            error = f"{error.__class__.__name__}: {error}"
        return cls(ok=False, error=error)


__all__ = [
    "AuthFailure",
    "Authenticated",
    "ClientEvent",
    "ClientEventBase",
    "CredentialIssued",
    "Disconnected",
    "InboundMessage",
    "MessageReceived",
    "Ready",
    "SendResult",
    "Started",
]
