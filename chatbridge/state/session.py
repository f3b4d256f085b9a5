"""Session lifecycle state store.

The store owns the connection lifecycle FSM and the immutable snapshot that
every reader sees. :meth:`SessionStore.apply_transition` is the only way to
change it: a complete new :class:`SessionSnapshot` is built and swapped in
with a single assignment, then listeners are notified synchronously.
"""

from __future__ import annotations

import enum
import logging
import math
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Final

import msgspec
from transitions import Machine

from ..const import (
    MESSAGE_AUTH_FAILED,
    MESSAGE_AUTHENTICATED,
    MESSAGE_DISCONNECTED,
    MESSAGE_READY,
)

logger = logging.getLogger("chatbridge.state.session")


class SessionPhase(enum.StrEnum):
    IDLE = "Idle"
    AWAITING_SCAN = "AwaitingScan"
    AUTHENTICATED = "Authenticated"
    READY = "Ready"
    DISCONNECTED = "Disconnected"
    AUTH_FAILED = "AuthFailed"


class SessionEvent(enum.StrEnum):
    CREDENTIAL_ISSUED = "credential_issued"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"


# Edges the network client is expected to drive. Anything else is still
# applied (the client is authoritative) but logged as an override.
LEGAL_EDGES: Final[frozenset[tuple[SessionPhase, SessionEvent]]] = frozenset(
    {
        (SessionPhase.IDLE, SessionEvent.CREDENTIAL_ISSUED),
        (SessionPhase.AWAITING_SCAN, SessionEvent.CREDENTIAL_ISSUED),
        (SessionPhase.AWAITING_SCAN, SessionEvent.AUTHENTICATED),
        (SessionPhase.AWAITING_SCAN, SessionEvent.READY),
        (SessionPhase.AUTH_FAILED, SessionEvent.CREDENTIAL_ISSUED),
        (SessionPhase.DISCONNECTED, SessionEvent.CREDENTIAL_ISSUED),
        (SessionPhase.READY, SessionEvent.DISCONNECTED),
    }
    | {(phase, SessionEvent.READY) for phase in SessionPhase}
    | {(phase, SessionEvent.AUTH_FAILURE) for phase in SessionPhase}
)

_EVENT_TARGETS: Final[dict[SessionEvent, SessionPhase]] = {
    SessionEvent.CREDENTIAL_ISSUED: SessionPhase.AWAITING_SCAN,
    SessionEvent.AUTHENTICATED: SessionPhase.AUTHENTICATED,
    SessionEvent.READY: SessionPhase.READY,
    SessionEvent.AUTH_FAILURE: SessionPhase.AUTH_FAILED,
    SessionEvent.DISCONNECTED: SessionPhase.DISCONNECTED,
}

_EVENT_MESSAGES: Final[dict[SessionEvent, str | None]] = {
    SessionEvent.CREDENTIAL_ISSUED: None,
    SessionEvent.AUTHENTICATED: MESSAGE_AUTHENTICATED,
    SessionEvent.READY: MESSAGE_READY,
    SessionEvent.AUTH_FAILURE: MESSAGE_AUTH_FAILED,
    SessionEvent.DISCONNECTED: MESSAGE_DISCONNECTED,
}


class SessionSnapshot(msgspec.Struct, frozen=True):
    """Immutable view of the session at one point in time."""

    phase: SessionPhase = SessionPhase.IDLE
    pending_credential: str | None = None
    last_transition_at: float = 0.0
    last_message: str | None = None
    last_reason: str | None = None
    transitions: int = 0

    @property
    def has_credential(self) -> bool:
        return self.pending_credential is not None

    @property
    def is_ready(self) -> bool:
        return self.phase is SessionPhase.READY

    @property
    def is_authenticated(self) -> bool:
        return self.phase in (SessionPhase.AUTHENTICATED, SessionPhase.READY)

    def status_payload(self, now: float | None = None) -> dict[str, Any]:
        """Project the snapshot into the ``GET /status`` document."""
        stamp = datetime.fromtimestamp(time.time() if now is None else now, tz=timezone.utc)
        return {
            "authenticated": self.is_authenticated,
            "ready": self.is_ready,
            "hasQR": self.has_credential,
            "timestamp": stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


SessionListener = Callable[[SessionSnapshot], None]


class SessionStore:
    """Single source of truth for the connection lifecycle."""

    if TYPE_CHECKING:
        fsm_state: str

        def trigger(self, event: str, *args: Any, **kwargs: Any) -> bool:
            """FSM trigger placeholder."""
            ...

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._listeners: list[SessionListener] = []
        self._snapshot = SessionSnapshot(last_transition_at=clock())

        self.state_machine = Machine(
            model=self,
            states=[phase.value for phase in SessionPhase],
            initial=SessionPhase.IDLE.value,
            model_attribute="fsm_state",
            auto_transitions=False,
        )
        for event, target in _EVENT_TARGETS.items():
            self.state_machine.add_transition(trigger=event.value, source="*", dest=target.value)

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def phase(self) -> SessionPhase:
        return self._snapshot.phase

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it again."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def apply_transition(self, event: SessionEvent | str, payload: str | None = None) -> SessionSnapshot:
        """Apply *event* and return the new snapshot.

        For ``credential_issued`` the payload is the pairing code; for
        ``auth_failure`` and ``disconnected`` it is the client's reason.
        """
        try:
            event = SessionEvent(event)
        except ValueError:
            raise ValueError(f"Unknown session event: {event!r}") from None
        if event is SessionEvent.CREDENTIAL_ISSUED and not payload:
            raise ValueError("credential_issued requires a non-empty credential")

        previous = self._snapshot
        if (previous.phase, event) not in LEGAL_EDGES:
            logger.info(
                "Applying %s in phase %s as override",
                event.value,
                previous.phase.value,
                extra={"event": event.value, "phase": previous.phase.value},
            )

        self.trigger(event.value)
        phase = SessionPhase(self.fsm_state)

        stamp = self._clock()
        if stamp <= previous.last_transition_at:
            stamp = math.nextafter(previous.last_transition_at, math.inf)

        reason = payload if event in (SessionEvent.AUTH_FAILURE, SessionEvent.DISCONNECTED) else None
        snapshot = SessionSnapshot(
            phase=phase,
            pending_credential=payload if phase is SessionPhase.AWAITING_SCAN else None,
            last_transition_at=stamp,
            last_message=_EVENT_MESSAGES[event],
            last_reason=reason,
            transitions=previous.transitions + 1,
        )
        self._snapshot = snapshot
        logger.debug(
            "Session %s -> %s on %s",
            previous.phase.value,
            phase.value,
            event.value,
        )
        self._notify(snapshot)
        return snapshot

    def _notify(self, snapshot: SessionSnapshot) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session listener %r failed", listener)


__all__ = [
    "LEGAL_EDGES",
    "SessionEvent",
    "SessionListener",
    "SessionPhase",
    "SessionSnapshot",
    "SessionStore",
]
