"""Logging helpers for the chat bridge daemon.

Every record becomes one JSON line. Session and observer context passed
through ``extra=`` (``phase``, ``event``, ``observer``) is lifted to the
top level so a session can be followed with a single ``jq`` filter; any
other extras are nested under ``extra``.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any, Final

import msgspec

from .settings import RuntimeConfig

SYSLOG_SOCKETS: tuple[Path, ...] = (Path("/dev/log"), Path("/var/run/syslog"))

CONTEXT_KEYS: Final[tuple[str, ...]] = ("phase", "event", "observer")

# Attributes every LogRecord carries; anything else came in through extra=.
_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", None, None))
) | {"message", "asctime"}

# Libraries that narrate each request or transition at INFO.
_NOISY_LOGGERS: Final[tuple[str, ...]] = ("aiohttp.access", "transitions")


def _serialise_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (bytes, bytearray)):
        # Client frames are JSON text; keep them readable.
        return bytes(value).decode("utf-8", "replace")
    if isinstance(value, msgspec.Struct):
        return msgspec.to_builtins(value)
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Render records as JSON lines with session context up front."""

    PREFIX = "chatbridge."

    def format(self, record: logging.LogRecord) -> str:
        name = record.name.removeprefix(self.PREFIX)
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": name,
            "message": record.getMessage(),
        }

        extras: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            if key in CONTEXT_KEYS:
                payload[key] = _serialise_value(value)
            else:
                extras[key] = _serialise_value(value)
        if extras:
            payload["extra"] = extras

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return msgspec.json.encode(payload).decode("utf-8")


def _build_handler(use_syslog: bool = False) -> Handler:
    if use_syslog:
        socket_path = next((path for path in SYSLOG_SOCKETS if path.exists()), None)
        if socket_path is not None:
            handler = SysLogHandler(address=str(socket_path), facility=SysLogHandler.LOG_DAEMON)
            handler.ident = "chatbridge "
            return handler
    return logging.StreamHandler()


def configure_logging(config: RuntimeConfig) -> None:
    """Configure root logging based on runtime settings."""

    level_name = "DEBUG" if config.debug_logging else "INFO"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {"()": StructuredLogFormatter},
            },
            "handlers": {
                "chatbridge": {
                    "()": _build_handler,
                    "use_syslog": config.log_syslog,
                    "level": level_name,
                    "formatter": "structured",
                }
            },
            "root": {
                "level": level_name,
                "handlers": ["chatbridge"],
            },
            "loggers": {name: {"level": "WARNING"} for name in _NOISY_LOGGERS},
        }
    )

    logging.getLogger("chatbridge").info("Logging configured at level %s", level_name)
