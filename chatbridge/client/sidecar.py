"""Network client backed by a helper process.

The helper (for instance a headless-browser driver) is spawned from the
configured command line and speaks newline-delimited JSON:

* stdout carries events tagged by ``type``: ``started``, ``qr``, ``authenticated``,
  ``ready``, ``auth_failure``, ``disconnected`` and ``message``.
* stdin receives commands: ``{"type": "reply", ...}`` and
  ``{"type": "destroy"}``.

stderr is inherited so the helper's own diagnostics reach the console.
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
from asyncio.subprocess import Process
from typing import Any

import msgspec

from ..config.settings import RuntimeConfig
from ..const import CLIENT_ENV_BROWSER_PATH, CLIENT_ENV_SESSION_DIR
from ..exceptions import ClientInitializationError, ClientProtocolError, ClientTeardownError
from .events import ClientEvent, Disconnected, InboundMessage, SendResult, Started

logger = logging.getLogger("chatbridge.client.sidecar")

CLIENT_EXIT_TIMEOUT = 5.0
CLIENT_STARTUP_TIMEOUT = 60.0
CLIENT_STREAM_LIMIT = 1 << 20

_EVENT_DECODER = msgspec.json.Decoder(ClientEvent)
_ENCODER = msgspec.json.Encoder()


def decode_event(line: bytes) -> ClientEvent:
    """Decode one stdout frame into a typed event."""
    try:
        return _EVENT_DECODER.decode(line)
    except msgspec.DecodeError as exc:
        raise ClientProtocolError(f"Undecodable client frame: {exc}", raw=line) from exc


def encode_command(command: dict[str, Any]) -> bytes:
    return _ENCODER.encode(command) + b"\n"


class SidecarClient:
    """Drive the messaging network through a helper subprocess."""

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        exit_timeout: float = CLIENT_EXIT_TIMEOUT,
        startup_timeout: float = CLIENT_STARTUP_TIMEOUT,
    ) -> None:
        self.config = config
        self.events: asyncio.Queue[ClientEvent] = asyncio.Queue()
        self._exit_timeout = exit_timeout
        self._startup_timeout = startup_timeout
        self._started = asyncio.Event()
        self._proc: Process | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self._closing = False

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    def _child_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env[CLIENT_ENV_BROWSER_PATH] = self.config.browser_path
        env[CLIENT_ENV_SESSION_DIR] = self.config.session_dir
        return env

    async def initialize(self) -> None:
        """Spawn the helper and wait until it reports in.

        The helper is considered up once it writes its first valid frame
        (``started`` or any lifecycle event). Exiting or staying silent for
        ``startup_timeout`` seconds before that raises
        :class:`ClientInitializationError` so the caller can retry.
        """
        if self.running:
            return
        argv = self.config.client_argv
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                env=self._child_env(),
                limit=CLIENT_STREAM_LIMIT,
            )
        except OSError as exc:
            raise ClientInitializationError(f"Failed to start client {argv[0]!r}: {exc}") from exc

        self._proc = proc
        self._closing = False
        self._started = asyncio.Event()
        reader = asyncio.create_task(self._read_events(proc, self._started), name="client-reader")
        self._reader_task = reader
        logger.debug("Client process spawned", extra={"pid": proc.pid, "command": argv[0]})

        started_waiter = asyncio.create_task(self._started.wait())
        try:
            await asyncio.wait(
                {started_waiter, reader},
                timeout=self._startup_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            started_waiter.cancel()

        if self._started.is_set():
            logger.info("Client process started", extra={"pid": proc.pid, "command": argv[0]})
            return

        if reader.done():
            reason = f"client exited with code {proc.returncode} before starting"
        else:
            reason = f"client did not start within {self._startup_timeout:.1f}s"
        await self._abandon(proc)
        raise ClientInitializationError(reason)

    async def _abandon(self, proc: Process) -> None:
        self._closing = True
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
        reader = self._reader_task
        self._reader_task = None
        self._proc = None
        if reader is not None and not reader.done():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)

    async def _read_events(self, proc: Process, started: asyncio.Event) -> None:
        assert proc.stdout is not None
        while True:
            line = await proc.stdout.readline()
            if not line:
                break
            line = line.strip()
            if not line:
                continue
            try:
                event = decode_event(line)
            except ClientProtocolError as exc:
                logger.warning("Dropping client frame: %s", exc.raw[:256].decode("utf-8", "replace"))
                continue
            started.set()
            if not isinstance(event, Started):
                self.events.put_nowait(event)

        returncode = await proc.wait()
        if self._closing or not started.is_set():
            return
        logger.error("Client process exited unexpectedly (code %s)", returncode)
        self.events.put_nowait(
            Disconnected(reason=f"client process exited with code {returncode}", process_exited=True)
        )

    async def _write(self, proc: Process, command: dict[str, Any]) -> None:
        assert proc.stdin is not None
        async with self._write_lock:
            proc.stdin.write(encode_command(command))
            await proc.stdin.drain()

    async def reply(self, message: InboundMessage, text: str) -> SendResult:
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return SendResult.failure("client is not running")
        command = {
            "type": "reply",
            "to": message.sender,
            "message_id": message.id,
            "text": text,
        }
        try:
            await self._write(proc, command)
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            return SendResult.failure(exc)
        return SendResult.success()

    async def destroy(self) -> None:
        proc = self._proc
        if proc is None:
            return
        self._closing = True
        try:
            if proc.returncode is None:
                try:
                    await self._write(proc, {"type": "destroy"})
                    assert proc.stdin is not None
                    proc.stdin.close()
                except (BrokenPipeError, ConnectionResetError, OSError):
                    logger.debug("Client stdin already closed during destroy")
                try:
                    async with asyncio.timeout(self._exit_timeout):
                        await proc.wait()
                except TimeoutError:
                    logger.warning("Client process did not exit in %.1fs; killing", self._exit_timeout)
                    try:
                        proc.kill()
                    except ProcessLookupError:
                        pass
                    await proc.wait()
                    raise ClientTeardownError(
                        f"client process did not exit within {self._exit_timeout:.1f}s"
                    ) from None
            logger.info("Client process stopped", extra={"returncode": proc.returncode})
        finally:
            reader = self._reader_task
            self._reader_task = None
            self._proc = None
            if reader is not None and not reader.done():
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)


__all__ = ["SidecarClient", "decode_event", "encode_command"]
