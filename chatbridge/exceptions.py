"""Exception hierarchy for the chat bridge daemon."""

from __future__ import annotations


class ChatBridgeError(Exception):
    """Base class for all chat bridge errors."""


class ClientInitializationError(ChatBridgeError):
    """The network client failed to start; the attempt may be retried."""


class ClientTeardownError(ChatBridgeError):
    """The network client failed to release its resources on shutdown."""


class ClientProtocolError(ChatBridgeError):
    """The network client produced a frame that could not be decoded."""

    def __init__(self, message: str, *, raw: bytes = b"") -> None:
        super().__init__(message)
        self.raw = raw


__all__ = [
    "ChatBridgeError",
    "ClientInitializationError",
    "ClientProtocolError",
    "ClientTeardownError",
]
