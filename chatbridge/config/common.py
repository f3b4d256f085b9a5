"""Environment helpers shared by the configuration loaders."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Final

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Environment variable -> RuntimeConfig field.
ENV_KEYS: Final[Mapping[str, str]] = {
    "HOST": "host",
    "PORT": "port",
    "CHROMIUM_PATH": "browser_path",
    "CHATBRIDGE_CLIENT_COMMAND": "client_command",
    "CHATBRIDGE_SESSION_DIR": "session_dir",
    "CHATBRIDGE_BROADCAST_SENDER": "broadcast_sender",
    "CHATBRIDGE_INIT_RETRY_INTERVAL": "init_retry_interval",
    "CHATBRIDGE_INIT_MAX_ATTEMPTS": "init_max_attempts",
    "CHATBRIDGE_SHUTDOWN_TIMEOUT": "shutdown_timeout",
    "CHATBRIDGE_OBSERVER_QUEUE_LIMIT": "observer_queue_limit",
    "CHATBRIDGE_METRICS_ENABLED": "metrics_enabled",
    "CHATBRIDGE_RENDER_QR": "render_qr",
    "CHATBRIDGE_DEBUG": "debug_logging",
    "CHATBRIDGE_LOG_SYSLOG": "log_syslog",
}


def get_env_config(
    environ: Mapping[str, str] | None = None,
    *,
    dotenv_path: str | None = None,
) -> dict[str, str]:
    """Collect raw configuration values keyed by RuntimeConfig field name.

    When *environ* is omitted the process environment is used, after
    loading an optional ``.env`` file. Variables already present in the
    environment win over the file.
    """
    if environ is None:
        load_dotenv(dotenv_path=dotenv_path, override=False)
        environ = os.environ

    raw: dict[str, str] = {}
    for env_key, field_name in ENV_KEYS.items():
        value = environ.get(env_key)
        if value is None:
            continue
        value = value.strip()
        if not value:
            logger.debug("Ignoring empty environment value for %s", env_key)
            continue
        raw[field_name] = value
    return raw


__all__ = ["ENV_KEYS", "get_env_config"]
