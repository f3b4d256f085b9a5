"""Session and runtime state for the chat bridge daemon."""

from .context import RuntimeState, create_runtime_state
from .session import SessionEvent, SessionPhase, SessionSnapshot, SessionStore

__all__ = [
    "RuntimeState",
    "SessionEvent",
    "SessionPhase",
    "SessionSnapshot",
    "SessionStore",
    "create_runtime_state",
]
