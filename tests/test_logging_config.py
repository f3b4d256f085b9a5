"""Tests for the logging configuration."""

from __future__ import annotations

import json
import logging
import sys
from unittest.mock import patch

from chatbridge.client.events import SendResult
from chatbridge.config import logging as log_mod
from chatbridge.config.settings import RuntimeConfig
from chatbridge.state.session import SessionPhase


def _record(name: str = "chatbridge.broadcast", msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_formatter_lifts_session_context_and_nests_other_extras() -> None:
    record = _record()
    record.observer = "abc123"  # type: ignore[attr-defined]
    record.phase = SessionPhase.AWAITING_SCAN  # type: ignore[attr-defined]
    record.raw = b'{"type": "qr", \xff'  # type: ignore[attr-defined]
    record.result = SendResult.failure("client is not running")  # type: ignore[attr-defined]
    record.custom_obj = object()  # type: ignore[attr-defined]

    payload = json.loads(log_mod.StructuredLogFormatter().format(record))

    assert payload["logger"] == "broadcast"
    assert payload["level"] == "INFO"
    assert payload["message"] == "hello"
    assert payload["ts"].endswith("Z")
    assert payload["observer"] == "abc123"
    assert payload["phase"] == "AwaitingScan"
    assert "observer" not in payload["extra"]
    assert payload["extra"]["raw"] == '{"type": "qr", \ufffd'
    assert payload["extra"]["result"] == {"ok": False, "error": "client is not running"}
    assert str(record.custom_obj) in payload["extra"]["custom_obj"]  # type: ignore[attr-defined]


def test_formatter_keeps_foreign_logger_names_and_exceptions() -> None:
    try:
        raise RuntimeError("kaput")
    except RuntimeError:
        record = logging.LogRecord("aiohttp.server", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

    payload = json.loads(log_mod.StructuredLogFormatter().format(record))

    assert payload["logger"] == "aiohttp.server"
    assert "RuntimeError: kaput" in payload["exception"]
    assert "extra" not in payload


def test_configure_logging_uses_debug_level() -> None:
    config = RuntimeConfig(debug_logging=True)

    with patch("chatbridge.config.logging.dictConfig") as mock_dict_config:
        log_mod.configure_logging(config)

    config_arg = mock_dict_config.call_args[0][0]
    assert config_arg["root"]["level"] == "DEBUG"
    assert config_arg["handlers"]["chatbridge"]["use_syslog"] is False
    assert config_arg["loggers"]["aiohttp.access"]["level"] == "WARNING"


def test_configure_logging_installs_structured_handler() -> None:
    log_mod.configure_logging(RuntimeConfig())

    root = logging.getLogger()
    assert root.level == logging.INFO
    assert any(isinstance(h.formatter, log_mod.StructuredLogFormatter) for h in root.handlers)


def test_configure_logging_quiets_chatty_libraries() -> None:
    log_mod.configure_logging(RuntimeConfig())

    assert logging.getLogger("transitions").level == logging.WARNING
    assert logging.getLogger("aiohttp.access").level == logging.WARNING


def test_build_handler_defaults_to_stream() -> None:
    assert isinstance(log_mod._build_handler(), logging.StreamHandler)


def test_build_handler_falls_back_without_syslog_socket(tmp_path) -> None:
    with patch.object(log_mod, "SYSLOG_SOCKETS", (tmp_path / "missing",)):
        handler = log_mod._build_handler(use_syslog=True)

    assert isinstance(handler, logging.StreamHandler)


def test_build_handler_uses_first_existing_syslog_socket(tmp_path) -> None:
    fake_socket = tmp_path / "log"
    fake_socket.touch()
    sockets = (tmp_path / "missing", fake_socket)

    with patch.object(log_mod, "SYSLOG_SOCKETS", sockets), patch.object(log_mod, "SysLogHandler") as mock_handler_cls:
        handler = log_mod._build_handler(use_syslog=True)

    mock_handler_cls.assert_called_once()
    assert mock_handler_cls.call_args.kwargs["address"] == str(fake_socket)
    assert handler is mock_handler_cls.return_value
