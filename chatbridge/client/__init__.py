"""Network client interface and implementations."""

from .base import NetworkClient
from .events import (
    AuthFailure,
    Authenticated,
    ClientEvent,
    CredentialIssued,
    Disconnected,
    InboundMessage,
    MessageReceived,
    Ready,
    SendResult,
)
from .sidecar import SidecarClient

__all__ = [
    "AuthFailure",
    "Authenticated",
    "ClientEvent",
    "CredentialIssued",
    "Disconnected",
    "InboundMessage",
    "MessageReceived",
    "NetworkClient",
    "Ready",
    "SendResult",
    "SidecarClient",
]
