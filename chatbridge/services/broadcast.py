"""Fan-out of session transitions to connected observers.

Each observer gets an :class:`ObserverChannel` with its own bounded FIFO.
Registration, the initial sync event and every fan-out happen synchronously
inside one event-loop turn, so a channel always sees exactly one sync event
followed by the transitions accepted after it joined, in order. Transport
code drains the queue with :meth:`ObserverChannel.next_event`.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

import msgspec

from ..const import (
    EVENT_QR_CODE,
    EVENT_STATUS,
    MESSAGE_AUTH_FAILED,
    MESSAGE_DISCONNECTED,
    MESSAGE_READY,
    MESSAGE_WAITING,
    STATUS_CONNECTED,
    STATUS_DISCONNECTED,
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_WAITING,
)
from ..state.context import RuntimeState
from ..state.session import SessionPhase, SessionSnapshot

logger = logging.getLogger("chatbridge.broadcast")

_ENCODER = msgspec.json.Encoder()


class ObserverEvent(msgspec.Struct, frozen=True):
    """One server-to-observer frame."""

    event: str
    data: dict[str, Any]

    def encode(self) -> bytes:
        return _ENCODER.encode(self)


def _qr_event(snapshot: SessionSnapshot) -> ObserverEvent:
    return ObserverEvent(EVENT_QR_CODE, {"qr": snapshot.pending_credential, "status": STATUS_PENDING})


def _connected_event(snapshot: SessionSnapshot) -> ObserverEvent:
    return ObserverEvent(
        EVENT_STATUS,
        {"status": STATUS_CONNECTED, "message": snapshot.last_message or MESSAGE_READY, "ready": True},
    )


def _status_event(status: str, message: str) -> ObserverEvent:
    return ObserverEvent(EVENT_STATUS, {"status": status, "message": message})


def build_transition_event(snapshot: SessionSnapshot) -> ObserverEvent:
    """Event broadcast to every channel after a transition."""
    phase = snapshot.phase
    if phase is SessionPhase.AWAITING_SCAN:
        return _qr_event(snapshot)
    if phase is SessionPhase.READY:
        return _connected_event(snapshot)
    if phase is SessionPhase.AUTH_FAILED:
        return _status_event(STATUS_ERROR, snapshot.last_message or MESSAGE_AUTH_FAILED)
    if phase is SessionPhase.DISCONNECTED:
        return _status_event(STATUS_DISCONNECTED, snapshot.last_message or MESSAGE_DISCONNECTED)
    return _status_event(STATUS_WAITING, snapshot.last_message or MESSAGE_WAITING)


def build_sync_event(snapshot: SessionSnapshot) -> ObserverEvent:
    """Event sent once to a channel when it joins, or on request."""
    if snapshot.phase is SessionPhase.AWAITING_SCAN:
        return _qr_event(snapshot)
    if snapshot.phase is SessionPhase.READY:
        return _connected_event(snapshot)
    return _status_event(STATUS_WAITING, MESSAGE_WAITING)


class ObserverChannel:
    """Outbound queue of one connected observer."""

    def __init__(
        self,
        *,
        limit: int,
        channel_id: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.id = channel_id or uuid.uuid4().hex
        self.connected_at = clock()
        self._queue: asyncio.Queue[ObserverEvent | None] = asyncio.Queue(maxsize=limit + 1)
        self._limit = limit
        self.closed = False

    def __repr__(self) -> str:
        return f"ObserverChannel(id={self.id!r}, closed={self.closed})"

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def deliver(self, event: ObserverEvent) -> bool:
        """Queue *event*; returns False once the channel is closed.

        Raises :class:`asyncio.QueueFull` when the observer has fallen more
        than ``limit`` events behind.
        """
        if self.closed:
            return False
        if self._queue.qsize() >= self._limit:
            raise asyncio.QueueFull
        self._queue.put_nowait(event)
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # The spare slot keeps room for the sentinel after a full queue.
        self._queue.put_nowait(None)

    async def next_event(self) -> ObserverEvent | None:
        """Next queued event, or None once the channel is closed and drained."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def drain_nowait(self) -> list[ObserverEvent]:
        """Pop everything currently queued (closing sentinel excluded)."""
        events: list[ObserverEvent] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not None:
                events.append(item)
        return events


class BroadcastHub:
    """Keep every connected observer in step with the session store."""

    def __init__(self, state: RuntimeState) -> None:
        self.state = state
        self._channels: dict[str, ObserverChannel] = {}
        self._unsubscribe: Callable[[], None] | None = state.session.add_listener(self.on_state_changed)

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    def channels(self) -> tuple[ObserverChannel, ...]:
        return tuple(self._channels.values())

    def open_channel(self) -> ObserverChannel:
        """Create, register and sync a new observer channel."""
        channel = ObserverChannel(limit=self.state.observer_queue_limit)
        self.on_observer_connected(channel)
        return channel

    def on_observer_connected(self, channel: ObserverChannel) -> None:
        self._channels[channel.id] = channel
        self.state.record_observer_connected()
        logger.info("Observer connected", extra={"observer": channel.id, "observers": len(self._channels)})
        self._deliver(channel, build_sync_event(self.state.session.snapshot))

    def on_observer_disconnected(self, channel: ObserverChannel) -> None:
        self._remove(channel, dropped=False)

    def request_sync(self, channel: ObserverChannel) -> None:
        if channel.id not in self._channels:
            return
        self._deliver(channel, build_sync_event(self.state.session.snapshot))

    def on_state_changed(self, snapshot: SessionSnapshot) -> None:
        event = build_transition_event(snapshot)
        self.state.broadcast_events += 1
        for channel in tuple(self._channels.values()):
            self._deliver(channel, event)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for channel in tuple(self._channels.values()):
            self._remove(channel, dropped=False)

    def _deliver(self, channel: ObserverChannel, event: ObserverEvent) -> None:
        try:
            channel.deliver(event)
        except asyncio.QueueFull:
            logger.warning(
                "Observer %s fell %d events behind; disconnecting it",
                channel.id,
                channel.pending,
            )
            self._remove(channel, dropped=True)

    def _remove(self, channel: ObserverChannel, *, dropped: bool) -> None:
        channel.close()
        if self._channels.pop(channel.id, None) is None:
            return
        self.state.record_observer_disconnected(dropped=dropped)
        logger.info(
            "Observer disconnected",
            extra={"observer": channel.id, "observers": len(self._channels), "dropped": dropped},
        )


__all__ = [
    "BroadcastHub",
    "ObserverChannel",
    "ObserverEvent",
    "build_sync_event",
    "build_transition_event",
]
