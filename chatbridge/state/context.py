"""Runtime state container for the chat bridge daemon."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Final

import msgspec
import psutil

from ..config.settings import RuntimeConfig
from ..const import DEFAULT_BROADCAST_SENDER, DEFAULT_OBSERVER_QUEUE_LIMIT
from .session import SessionSnapshot, SessionStore

logger = logging.getLogger("chatbridge.state")

__all__: Final[tuple[str, ...]] = (
    "DispatchStats",
    "RuntimeState",
    "SupervisorStats",
    "create_runtime_state",
)


def _session_store_factory() -> SessionStore:
    return SessionStore()


def _supervisor_stats_factory() -> dict[str, SupervisorStats]:
    return {}


def _dispatch_stats_factory() -> DispatchStats:
    return DispatchStats()


class DispatchStats(msgspec.Struct):
    """Inbound message accounting."""

    received: int = 0
    filtered: int = 0
    ignored: int = 0
    replied: int = 0
    failed: int = 0
    last_error: str | None = None
    last_message_unix: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


class SupervisorStats(msgspec.Struct):
    """Task supervisor statistics."""

    restarts: int = 0
    last_failure_unix: float = 0.0
    last_exception: str | None = None
    backoff_seconds: float = 0.0
    fatal: bool = False

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


def _collect_process_metrics() -> dict[str, Any]:
    """Collect resource usage of the daemon process using psutil."""
    result: dict[str, Any] = {}
    try:
        proc = psutil.Process(os.getpid())
        result["rss_bytes"] = proc.memory_info().rss
        result["cpu_percent"] = proc.cpu_percent(interval=None)
        result["num_threads"] = proc.num_threads()
    except (OSError, AttributeError, psutil.Error):
        result["rss_bytes"] = None
        result["cpu_percent"] = None
        result["num_threads"] = None
    return result


class RuntimeState(msgspec.Struct):
    """Aggregated mutable state shared across the daemon layers."""

    session: SessionStore = msgspec.field(default_factory=_session_store_factory)
    broadcast_sender: str = DEFAULT_BROADCAST_SENDER
    observer_queue_limit: int = DEFAULT_OBSERVER_QUEUE_LIMIT
    started_unix: float = msgspec.field(default_factory=time.time)
    dispatch_stats: DispatchStats = msgspec.field(default_factory=_dispatch_stats_factory)
    init_attempts: int = 0
    init_failures: int = 0
    init_last_error: str | None = None
    client_initialized: bool = False
    client_exits: int = 0
    observers_active: int = 0
    observers_connected_total: int = 0
    observers_dropped: int = 0
    broadcast_events: int = 0
    supervisor_stats: dict[str, SupervisorStats] = msgspec.field(default_factory=_supervisor_stats_factory)

    def configure(self, config: RuntimeConfig) -> None:
        self.broadcast_sender = config.broadcast_sender
        self.observer_queue_limit = config.observer_queue_limit

    @property
    def snapshot(self) -> SessionSnapshot:
        return self.session.snapshot

    def record_init_attempt(self) -> None:
        self.init_attempts += 1

    def record_init_failure(self, exc: BaseException) -> None:
        self.init_failures += 1
        self.init_last_error = f"{exc.__class__.__name__}: {exc}"

    def record_init_success(self) -> None:
        self.client_initialized = True
        self.init_last_error = None

    def record_client_exit(self) -> None:
        self.client_initialized = False
        self.client_exits += 1

    def record_observer_connected(self) -> None:
        self.observers_active += 1
        self.observers_connected_total += 1

    def record_observer_disconnected(self, *, dropped: bool = False) -> None:
        self.observers_active = max(0, self.observers_active - 1)
        if dropped:
            self.observers_dropped += 1

    def record_supervisor_failure(
        self,
        name: str,
        *,
        backoff: float,
        exc: BaseException,
        fatal: bool = False,
    ) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            stats = SupervisorStats()
            self.supervisor_stats[name] = stats
        stats.restarts += 1
        stats.last_failure_unix = time.time()
        stats.last_exception = f"{exc.__class__.__name__}: {exc}"
        stats.backoff_seconds = backoff
        stats.fatal = fatal

    def mark_supervisor_healthy(self, name: str) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            return
        stats.backoff_seconds = 0.0
        stats.fatal = False

    def build_metrics_snapshot(self) -> dict[str, Any]:
        snapshot = self.session.snapshot
        return {
            "uptime_seconds": max(0.0, time.time() - self.started_unix),
            "session": {
                "phase": snapshot.phase.value,
                "ready": snapshot.is_ready,
                "authenticated": snapshot.is_authenticated,
                "has_credential": snapshot.has_credential,
                "transitions": snapshot.transitions,
                "last_transition_unix": snapshot.last_transition_at,
            },
            "client": {
                "initialized": self.client_initialized,
                "exits": self.client_exits,
                "init_attempts": self.init_attempts,
                "init_failures": self.init_failures,
                "init_last_error": self.init_last_error,
            },
            "observers": {
                "active": self.observers_active,
                "connected_total": self.observers_connected_total,
                "dropped": self.observers_dropped,
                "broadcast_events": self.broadcast_events,
            },
            "messages": self.dispatch_stats.as_dict(),
            "supervisors": {name: stats.as_dict() for name, stats in self.supervisor_stats.items()},
            "process": _collect_process_metrics(),
        }


def create_runtime_state(config: RuntimeConfig | dict[str, Any]) -> RuntimeState:
    if isinstance(config, dict):
        config = RuntimeConfig(**config)

    state = RuntimeState()
    state.configure(config)
    return state
