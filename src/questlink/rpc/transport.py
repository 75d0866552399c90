"""Newline-delimited JSON transport over a child process's standard streams."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from typing import Any

from questlink.rpc.errors import ProtocolError, SpawnError, WriteError
from questlink.rpc.protocol import decode_line

logger = logging.getLogger(__name__)

LineCallback = Callable[[dict[str, Any]], None]
ExitCallback = Callable[[int | None], None]

# asyncio's default 64KiB line limit is too small for battlefield reports
_STREAM_LIMIT = 16 * 1024 * 1024


class StdioTransport:
    """Owns one spawned subprocess and frames JSON documents one per line.

    Inbound lines are decoded and handed to the ``on_line`` callback from a
    background reader task. The ``on_exit`` callback fires exactly once when
    the process terminates, whatever the cause.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        name: str | None = None,
        env: dict[str, str] | None = None,
        shutdown_timeout: float = 2.0,
    ) -> None:
        if not command:
            raise ValueError("transport command is required")
        self._command = list(command)
        self._name = name or self._command[0]
        self._env = env
        self._shutdown_timeout = shutdown_timeout
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._line_callbacks: list[LineCallback] = []
        self._exit_callbacks: list[ExitCallback] = []
        self._exited = asyncio.Event()
        self._exit_code: int | None = None
        self._closing = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def is_running(self) -> bool:
        return self._process is not None and not self._exited.is_set()

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    def on_line(self, callback: LineCallback) -> None:
        self._line_callbacks.append(callback)

    def on_exit(self, callback: ExitCallback) -> None:
        self._exit_callbacks.append(callback)

    async def spawn(self) -> None:
        """Start the subprocess and its background readers.

        Raises:
            SpawnError: If the executable is missing or cannot be launched.
        """
        if self._process is not None:
            raise SpawnError("transport already spawned", server=self._name)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env,
                limit=_STREAM_LIMIT,
            )
        except FileNotFoundError:
            raise SpawnError(
                f"sidecar executable not found: {self._command[0]}",
                server=self._name,
            ) from None
        except PermissionError:
            raise SpawnError(
                f"sidecar executable is not runnable: {self._command[0]}",
                server=self._name,
            ) from None
        except OSError as e:
            raise SpawnError(
                f"failed to launch sidecar: {e}", server=self._name
            ) from None

        logger.info(
            "Sidecar spawned",
            extra={"server": self._name, "pid": self._process.pid},
        )
        self._reader_task = asyncio.create_task(
            self._read_stdout(), name=f"{self._name}-stdout"
        )
        self._stderr_task = asyncio.create_task(
            self._read_stderr(), name=f"{self._name}-stderr"
        )

    async def write(self, line: str) -> None:
        """Write one framed line.

        Raises:
            WriteError: If the process has exited or the transport is closing.
        """
        process = self._process
        if process is None or process.stdin is None:
            raise WriteError("transport not started", server=self._name)
        if self._exited.is_set() or self._closing:
            raise WriteError("transport closed", server=self._name)
        try:
            # a single write call keeps the frame contiguous on the pipe
            process.stdin.write((line + "\n").encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError, RuntimeError) as e:
            raise WriteError(f"transport closed: {e}", server=self._name) from None

    async def close(self) -> None:
        """Terminate the subprocess and wait for the exit notification."""
        process = self._process
        if process is None or self._exited.is_set():
            return
        self._closing = True
        if process.stdin is not None:
            with contextlib.suppress(Exception):
                process.stdin.close()
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self._shutdown_timeout)
            except TimeoutError:
                logger.warning("Sidecar did not exit, killing", extra={"server": self._name})
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
        await self.wait_closed()

    async def wait_closed(self) -> int | None:
        """Wait until the exit notification has fired and return the exit code."""
        await self._exited.wait()
        return self._exit_code

    async def _read_stdout(self) -> None:
        process = self._process
        assert process is not None and process.stdout is not None
        try:
            while True:
                try:
                    raw = await process.stdout.readline()
                except ValueError:
                    # line exceeded the stream limit; the remainder is dropped
                    logger.warning("Oversized line from sidecar", extra={"server": self._name})
                    continue
                if not raw:
                    break
                self._dispatch(raw)
        except Exception:
            logger.exception("Sidecar reader failed", extra={"server": self._name})
        finally:
            code = await process.wait()
            self._notify_exit(code)

    def _dispatch(self, raw: bytes) -> None:
        if not raw.strip():
            return
        try:
            message = decode_line(raw)
        except ProtocolError as e:
            logger.debug(
                "Non-protocol output from sidecar: %s",
                raw.decode("utf-8", errors="replace").rstrip(),
                extra={"server": self._name, "reason": str(e)},
            )
            return
        for callback in self._line_callbacks:
            try:
                callback(message)
            except Exception:
                logger.exception("Line callback failed", extra={"server": self._name})

    async def _read_stderr(self) -> None:
        process = self._process
        assert process is not None and process.stderr is not None
        while True:
            try:
                raw = await process.stderr.readline()
            except ValueError:
                continue
            if not raw:
                return
            logger.debug(
                "%s stderr: %s",
                self._name,
                raw.decode("utf-8", errors="replace").rstrip(),
            )

    def _notify_exit(self, code: int | None) -> None:
        if self._exited.is_set():
            return
        self._exit_code = code
        self._exited.set()
        log = logger.info if self._closing else logger.warning
        log(
            "Sidecar %s exited with code %s",
            self._name,
            code,
            extra={"server": self._name, "exit_code": code},
        )
        for callback in self._exit_callbacks:
            try:
                callback(code)
            except Exception:
                logger.exception("Exit callback failed", extra={"server": self._name})
