"""Marshmallow schema for RuntimeConfig validation."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import EXCLUDE, Schema, fields, post_load, validate

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
from .settings import RuntimeConfig


class RuntimeConfigSchema(Schema):
    """Declarative validation schema for chat bridge configuration."""

    class Meta:
        unknown = EXCLUDE

    # HTTP / observers
    host = fields.Str(load_default=DEFAULT_HOST, validate=validate.Length(min=1))
    port = fields.Int(load_default=DEFAULT_PORT, validate=validate.Range(min=0, max=65535))
    observer_queue_limit = fields.Int(
        load_default=DEFAULT_OBSERVER_QUEUE_LIMIT, validate=validate.Range(min=1)
    )
    metrics_enabled = fields.Bool(load_default=DEFAULT_METRICS_ENABLED)

    # Network client
    browser_path = fields.Str(load_default=DEFAULT_BROWSER_PATH, validate=validate.Length(min=1))
    client_command = fields.Str(load_default=DEFAULT_CLIENT_COMMAND, validate=validate.Length(min=1))
    session_dir = fields.Str(load_default=DEFAULT_SESSION_DIR, validate=validate.Length(min=1))
    broadcast_sender = fields.Str(load_default=DEFAULT_BROADCAST_SENDER, validate=validate.Length(min=1))
    render_qr = fields.Bool(load_default=DEFAULT_RENDER_QR)

    # Bootstrap / shutdown
    init_retry_interval = fields.Float(
        load_default=DEFAULT_INIT_RETRY_INTERVAL, validate=validate.Range(min=0.0)
    )
    init_max_attempts = fields.Int(load_default=None, allow_none=True, validate=validate.Range(min=1))
    shutdown_timeout = fields.Float(
        load_default=DEFAULT_SHUTDOWN_TIMEOUT, validate=validate.Range(min=0.1)
    )

    # Logging
    debug_logging = fields.Bool(load_default=DEFAULT_DEBUG_LOGGING)
    log_syslog = fields.Bool(load_default=DEFAULT_LOG_SYSLOG)

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> RuntimeConfig:
        return RuntimeConfig(**data)
