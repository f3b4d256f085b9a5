"""Bootstrap and teardown of the network client."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import msgspec
import tenacity

from ..client.base import NetworkClient
from ..config.settings import RuntimeConfig
from ..const import DEFAULT_INIT_RETRY_INTERVAL, DEFAULT_SHUTDOWN_TIMEOUT
from ..exceptions import ClientInitializationError
from ..state.context import RuntimeState

logger = logging.getLogger("chatbridge.supervisor")

EXIT_OK = 0
EXIT_FAILURE = 1

SleepFn = Callable[[float], Awaitable[None]]


class RetryPolicy(msgspec.Struct, frozen=True):
    """Fixed-interval retry policy for client initialization."""

    interval: float = DEFAULT_INIT_RETRY_INTERVAL
    max_attempts: int | None = None

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> RetryPolicy:
        return cls(interval=config.init_retry_interval, max_attempts=config.init_max_attempts)

    def stop_condition(self) -> tenacity.stop.stop_base:
        if self.max_attempts is None:
            return tenacity.stop_never
        return tenacity.stop_after_attempt(self.max_attempts)


class ClientSupervisor:
    """Own the client's initialize/destroy lifecycle."""

    def __init__(
        self,
        client: NetworkClient,
        state: RuntimeState,
        *,
        policy: RetryPolicy | None = None,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.client = client
        self.state = state
        self.policy = policy or RetryPolicy()
        self.shutdown_timeout = shutdown_timeout
        self._sleep = sleep
        self._shutdown_lock = asyncio.Lock()
        self._shutdown_status: int | None = None

    @property
    def shutdown_status(self) -> int | None:
        return self._shutdown_status

    def _before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.error(
            "Client initialization failed (%s); retrying in %.1fs",
            exc,
            delay,
            extra={"attempt": retry_state.attempt_number},
        )

    async def _attempt(self) -> None:
        self.state.record_init_attempt()
        try:
            await self.client.initialize()
        except Exception as exc:
            self.state.record_init_failure(exc)
            raise

    async def initialize(self) -> None:
        """Initialize the client, retrying at a fixed interval until it succeeds.

        Raises :class:`ClientInitializationError` only when the policy
        bounds the number of attempts and all of them failed.
        """
        retryer = tenacity.AsyncRetrying(
            sleep=self._sleep,
            wait=tenacity.wait_fixed(self.policy.interval),
            stop=self.policy.stop_condition(),
            retry=tenacity.retry_if_exception_type(Exception),
            before_sleep=self._before_sleep,
            reraise=True,
        )
        try:
            async for attempt in retryer:
                with attempt:
                    await self._attempt()
        except Exception as exc:
            logger.critical("Giving up on client initialization after %d attempts", self.state.init_attempts)
            raise ClientInitializationError(f"client initialization failed: {exc}") from exc

        self.state.record_init_success()
        logger.info("Client initialization started", extra={"attempts": self.state.init_attempts})

    async def shutdown(self) -> int:
        """Destroy the client once and return the process exit status."""
        async with self._shutdown_lock:
            if self._shutdown_status is not None:
                return self._shutdown_status

            logger.info("Shutting down client")
            try:
                async with asyncio.timeout(self.shutdown_timeout):
                    await self.client.destroy()
            except TimeoutError:
                logger.error("Client teardown timed out after %.1fs", self.shutdown_timeout)
                status = EXIT_FAILURE
            except Exception as exc:
                logger.error("Client teardown failed: %s", exc, exc_info=True)
                status = EXIT_FAILURE
            else:
                logger.info("Client released its resources")
                status = EXIT_OK

            self._shutdown_status = status
            return status


__all__ = ["EXIT_FAILURE", "EXIT_OK", "ClientSupervisor", "RetryPolicy"]
