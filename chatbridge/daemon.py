#!/usr/bin/env python3
"""Async orchestrator for the chat bridge daemon.

Architecture:
    main() -> BridgeDaemon -> TaskGroup
        ├── web-server (ObserverServer: /, /status, /ws, /metrics)
        ├── lifecycle-events (LifecycleAdapter consuming client events)
        └── client-init (ClientSupervisor.initialize, fixed-interval retry;
                         repeated whenever the client process exits)

SIGINT/SIGTERM set the stop event; the task group is then cancelled and
the client is destroyed exactly once. The process exits with the status
returned by :meth:`ClientSupervisor.shutdown`.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import NoReturn

import uvloop

from .client.base import NetworkClient
from .client.sidecar import SidecarClient
from .config.logging import configure_logging
from .config.settings import RuntimeConfig, load_runtime_config
from .exceptions import ClientInitializationError
from .services.broadcast import BroadcastHub
from .services.dispatcher import MessageDispatcher
from .services.lifecycle import ConsoleQRRenderer, LifecycleAdapter, QRRenderer
from .services.responder import RuleResponder
from .services.supervisor import EXIT_FAILURE, ClientSupervisor, RetryPolicy
from .services.task_supervisor import SupervisedTaskSpec, supervise_task
from .state.context import create_runtime_state
from .web.server import ObserverServer

logger = logging.getLogger("chatbridge")

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class BridgeDaemon:
    """Wire the session components together and run them until stopped.

    Attributes:
        config: Validated runtime configuration.
        state: Shared runtime state (session store and counters).
        client: Network client; a :class:`SidecarClient` unless injected.
        hub: Broadcast hub feeding observer channels.
        supervisor: Owner of client initialization and teardown.
        server: HTTP/websocket server.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        client: NetworkClient | None = None,
        renderer: QRRenderer | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.state = create_runtime_state(config)
        self.client: NetworkClient = client if client is not None else SidecarClient(config)
        self.hub = BroadcastHub(self.state)
        self.dispatcher = MessageDispatcher(self.state, RuleResponder(), self.client)
        if renderer is None and config.render_qr:
            renderer = ConsoleQRRenderer()
        self.adapter = LifecycleAdapter(
            self.state,
            self.client,
            self.dispatcher,
            renderer=renderer,
            on_client_exit=self._on_client_exit,
        )
        self.supervisor = ClientSupervisor(
            self.client,
            self.state,
            policy=RetryPolicy.from_config(config),
            shutdown_timeout=config.shutdown_timeout,
            sleep=sleep,
        )
        self.server = ObserverServer(
            self.state,
            self.hub,
            host=config.host,
            port=config.port,
            metrics_enabled=config.metrics_enabled,
        )
        self._stop_event = asyncio.Event()
        self._client_exited = asyncio.Event()
        self._failed = False

    def request_stop(self) -> None:
        if not self._stop_event.is_set():
            logger.info("Shutting down gracefully...")
        self._stop_event.set()

    def _setup_supervision(self) -> list[SupervisedTaskSpec]:
        return [
            SupervisedTaskSpec(
                name="web-server",
                factory=self.server.run,
                max_restarts=5,
            ),
            SupervisedTaskSpec(
                name="lifecycle-events",
                factory=self.adapter.run,
            ),
        ]

    def _on_client_exit(self) -> None:
        self.state.record_client_exit()
        self._client_exited.set()

    async def _run_client(self) -> None:
        """Initialize the client, and again each time its process dies."""
        while True:
            self._client_exited.clear()
            try:
                await self.supervisor.initialize()
            except ClientInitializationError as exc:
                logger.critical("%s; stopping daemon", exc)
                self._failed = True
                self.request_stop()
                return
            await self._client_exited.wait()
            logger.warning("Client process exited; initializing it again")

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> list[signal.Signals]:
        installed: list[signal.Signals] = []
        for sig in _STOP_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError):
                logger.debug("Signal handler for %s not supported on this loop", sig.name)
                continue
            installed.append(sig)
        return installed

    async def run(self) -> int:
        """Run until stopped and return the process exit status."""
        loop = asyncio.get_running_loop()
        installed = self._install_signal_handlers(loop)

        try:
            async with asyncio.TaskGroup() as task_group:
                tasks = [
                    task_group.create_task(
                        supervise_task(spec, state=self.state),
                        name=spec.name,
                    )
                    for spec in self._setup_supervision()
                ]
                tasks.append(task_group.create_task(self._run_client(), name="client-init"))

                await self._stop_event.wait()
                for task in tasks:
                    task.cancel()
        except* Exception as exc_group:
            for group_exc in exc_group.exceptions:
                logger.critical(
                    "Unhandled exception in main task group: %s",
                    group_exc,
                    exc_info=group_exc,
                )
            self._failed = True
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

        status = await self.supervisor.shutdown()
        self.hub.close()
        if self._failed:
            status = EXIT_FAILURE
        logger.info("Chat bridge daemon stopped.", extra={"exit_status": status})
        return status


def main() -> NoReturn:  # pragma: no cover (Entry point wrapper)
    try:
        config = load_runtime_config()
    except ValueError as exc:
        sys.stderr.write(f"chatbridge: {exc}\n")
        sys.exit(1)
    configure_logging(config)

    logger.info(
        "Starting chat bridge daemon on %s:%d (client: %s)",
        config.host,
        config.port,
        config.client_command,
    )

    try:
        daemon = BridgeDaemon(config)
        status = asyncio.run(daemon.run(), loop_factory=uvloop.new_event_loop)
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user.")
        sys.exit(0)
    except OSError as exc:
        logger.critical("System/OS error during daemon execution: %s", exc, exc_info=True)
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()
