"""Shared constants for the chat bridge daemon."""

from __future__ import annotations

from typing import Final

# HTTP / observer surface
DEFAULT_HOST: Final[str] = "0.0.0.0"
DEFAULT_PORT: Final[int] = 3000
DEFAULT_OBSERVER_QUEUE_LIMIT: Final[int] = 64
DEFAULT_METRICS_ENABLED: Final[bool] = True

# Network client
DEFAULT_BROWSER_PATH: Final[str] = "/usr/bin/chromium-browser"
DEFAULT_CLIENT_COMMAND: Final[str] = "chatbridge-client"
DEFAULT_SESSION_DIR: Final[str] = "./.chatbridge_auth"
DEFAULT_BROADCAST_SENDER: Final[str] = "status@broadcast"
DEFAULT_RENDER_QR: Final[bool] = True

# Bootstrap / shutdown
DEFAULT_INIT_RETRY_INTERVAL: Final[float] = 10.0
DEFAULT_SHUTDOWN_TIMEOUT: Final[float] = 10.0
DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_LOG_SYSLOG: Final[bool] = False

# Task supervision
SUPERVISOR_DEFAULT_MIN_BACKOFF: Final[float] = 1.0
SUPERVISOR_DEFAULT_MAX_BACKOFF: Final[float] = 30.0
SUPERVISOR_DEFAULT_RESTART_INTERVAL: Final[float] = 60.0
SUPERVISOR_MIN_RESTART_WINDOW: Final[float] = 10.0

# Environment passed to the sidecar client process
CLIENT_ENV_BROWSER_PATH: Final[str] = "CHROMIUM_PATH"
CLIENT_ENV_SESSION_DIR: Final[str] = "CHATBRIDGE_SESSION_DIR"

# Observer channel wire events
EVENT_QR_CODE: Final[str] = "qrCode"
EVENT_STATUS: Final[str] = "status"
EVENT_GET_QR: Final[str] = "getQR"

STATUS_PENDING: Final[str] = "pending"
STATUS_CONNECTED: Final[str] = "connected"
STATUS_ERROR: Final[str] = "error"
STATUS_DISCONNECTED: Final[str] = "disconnected"
STATUS_WAITING: Final[str] = "waiting"

MESSAGE_READY: Final[str] = "Bot is connected and ready!"
MESSAGE_AUTH_FAILED: Final[str] = "Authentication failed. Please try again."
MESSAGE_DISCONNECTED: Final[str] = "Connection lost. Refresh to generate a new QR code."
MESSAGE_WAITING: Final[str] = "Waiting for QR code generation..."
MESSAGE_AUTHENTICATED: Final[str] = "QR code accepted, waiting for session to become ready..."
