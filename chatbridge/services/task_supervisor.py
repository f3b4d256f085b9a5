"""Restart long-running daemon tasks with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

import msgspec
import tenacity

from ..const import (
    SUPERVISOR_DEFAULT_MAX_BACKOFF,
    SUPERVISOR_DEFAULT_MIN_BACKOFF,
    SUPERVISOR_DEFAULT_RESTART_INTERVAL,
    SUPERVISOR_MIN_RESTART_WINDOW,
)
from ..state.context import RuntimeState

_NEVER_RETRY: tuple[type[BaseException], ...] = (
    asyncio.CancelledError,
    SystemExit,
    KeyboardInterrupt,
    GeneratorExit,
)


class SupervisedTaskSpec(msgspec.Struct):
    """Specification for a supervised async task."""

    name: str
    factory: Callable[[], Awaitable[None]]
    fatal_exceptions: tuple[type[BaseException], ...] = ()
    max_restarts: int | None = None
    restart_interval: float = SUPERVISOR_DEFAULT_RESTART_INTERVAL
    min_backoff: float = SUPERVISOR_DEFAULT_MIN_BACKOFF
    max_backoff: float = SUPERVISOR_DEFAULT_MAX_BACKOFF


class SupervisorCallbacks:
    """tenacity hooks that log restarts and record them in the runtime state."""

    __slots__ = ("name", "log", "state")

    def __init__(self, name: str, log: logging.Logger, state: RuntimeState | None) -> None:
        self.name = name
        self.log = log
        self.state = state

    def before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self.log.error("%s failed (%s); restarting in %.1fs", self.name, exc, delay)
        if self.state is not None and exc is not None:
            self.state.record_supervisor_failure(self.name, backoff=delay, exc=exc)

    def give_up(self, exc: BaseException, *, fatal_type: bool = False) -> None:
        if fatal_type:
            self.log.critical("%s failed with fatal exception: %s", self.name, exc)
        else:
            self.log.error("%s exceeded max restarts; giving up", self.name)
        if self.state is not None:
            self.state.record_supervisor_failure(self.name, backoff=0.0, exc=exc, fatal=True)


def _build_retryer(
    spec: SupervisedTaskSpec,
    callbacks: SupervisorCallbacks,
    sleep: Callable[[float], Awaitable[None]],
) -> tenacity.AsyncRetrying:
    stop = (
        tenacity.stop_after_attempt(spec.max_restarts + 1)
        if spec.max_restarts is not None
        else tenacity.stop_never
    )
    return tenacity.AsyncRetrying(
        sleep=sleep,
        wait=tenacity.wait_exponential(multiplier=spec.min_backoff, max=spec.max_backoff),
        retry=tenacity.retry_if_not_exception_type(_NEVER_RETRY + spec.fatal_exceptions),
        stop=stop,
        before_sleep=callbacks.before_sleep,
        reraise=True,
    )


async def supervise_task(
    spec: SupervisedTaskSpec,
    *,
    state: RuntimeState | None = None,
    logger: logging.Logger | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Run ``spec.factory`` and restart it whenever it fails.

    Returns when the task exits cleanly. Fatal exception types and
    cancellation propagate immediately; other failures are retried until
    ``spec.max_restarts`` is exhausted. A run that stayed up longer than the
    restart window resets the backoff.
    """
    log = logger or logging.getLogger("chatbridge.supervisor")
    callbacks = SupervisorCallbacks(spec.name, log, state)
    healthy_window = max(SUPERVISOR_MIN_RESTART_WINDOW, spec.restart_interval)

    try:
        while True:
            retryer = _build_retryer(spec, callbacks, sleep)
            started_at = 0.0
            try:
                async for attempt in retryer:
                    with attempt:
                        started_at = time.monotonic()
                        await spec.factory()

                        log.warning("%s task exited cleanly; supervisor exiting", spec.name)
                        if state is not None:
                            state.mark_supervisor_healthy(spec.name)
                        return
            except spec.fatal_exceptions as exc:
                callbacks.give_up(exc, fatal_type=True)
                raise
            except Exception as exc:
                if started_at > 0 and (time.monotonic() - started_at) > healthy_window:
                    log.info("%s was healthy long enough; resetting backoff", spec.name)
                    if state is not None:
                        state.mark_supervisor_healthy(spec.name)
                    continue
                callbacks.give_up(exc)
                raise
    except asyncio.CancelledError:
        log.debug("%s supervisor cancelled", spec.name)
        raise


__all__ = ["SupervisedTaskSpec", "SupervisorCallbacks", "supervise_task"]
