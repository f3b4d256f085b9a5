"""Settings loader for the chat bridge daemon.

Configuration is read from the process environment, optionally seeded from
a ``.env`` file, and validated by :class:`RuntimeConfigSchema`.
"""

from __future__ import annotations

import logging
import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass

from marshmallow import ValidationError

from ..const import (
    DEFAULT_BROADCAST_SENDER,
    DEFAULT_BROWSER_PATH,
    DEFAULT_CLIENT_COMMAND,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_HOST,
    DEFAULT_INIT_RETRY_INTERVAL,
    DEFAULT_LOG_SYSLOG,
    DEFAULT_METRICS_ENABLED,
    DEFAULT_OBSERVER_QUEUE_LIMIT,
    DEFAULT_PORT,
    DEFAULT_RENDER_QR,
    DEFAULT_SESSION_DIR,
    DEFAULT_SHUTDOWN_TIMEOUT,
)
from .common import get_env_config

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RuntimeConfig:
    """Strongly typed configuration for the daemon."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    browser_path: str = DEFAULT_BROWSER_PATH
    client_command: str = DEFAULT_CLIENT_COMMAND
    session_dir: str = DEFAULT_SESSION_DIR
    broadcast_sender: str = DEFAULT_BROADCAST_SENDER
    init_retry_interval: float = DEFAULT_INIT_RETRY_INTERVAL
    init_max_attempts: int | None = None
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    observer_queue_limit: int = DEFAULT_OBSERVER_QUEUE_LIMIT
    metrics_enabled: bool = DEFAULT_METRICS_ENABLED
    render_qr: bool = DEFAULT_RENDER_QR
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    log_syslog: bool = DEFAULT_LOG_SYSLOG

    @property
    def client_argv(self) -> list[str]:
        return shlex.split(self.client_command)

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError("port must be between 0 and 65535")
        if self.init_retry_interval < 0.0:
            raise ValueError("init_retry_interval must not be negative")
        if self.init_max_attempts is not None and self.init_max_attempts < 1:
            raise ValueError("init_max_attempts must be a positive integer")
        if self.shutdown_timeout <= 0.0:
            raise ValueError("shutdown_timeout must be a positive number")
        self.observer_queue_limit = self._require_positive(
            "observer_queue_limit", self.observer_queue_limit
        )
        self.client_command = self.client_command.strip()
        if not self.client_argv:
            raise ValueError("client_command must not be empty")
        self.broadcast_sender = self.broadcast_sender.strip()
        if not self.broadcast_sender:
            raise ValueError("broadcast_sender must not be empty")
        self.session_dir = os.path.abspath(os.path.expanduser(self.session_dir))
        if not os.path.exists(self.browser_path):
            logger.warning(
                "Browser executable %s does not exist; the client may fail to start.",
                self.browser_path,
            )

    @staticmethod
    def _require_positive(name: str, value: int) -> int:
        if value <= 0:
            raise ValueError(f"{name} must be a positive integer")
        return value


def load_runtime_config(environ: Mapping[str, str] | None = None) -> RuntimeConfig:
    """Load configuration from the environment and defaults."""
    from .schema import RuntimeConfigSchema

    raw = get_env_config(environ)
    try:
        config = RuntimeConfigSchema().load(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc.messages}") from exc
    assert isinstance(config, RuntimeConfig)
    return config


__all__ = ["RuntimeConfig", "load_runtime_config"]
