"""Fork-per-invocation function runner.

fork-runner runtime module v0.1.0

This module provides:
- One child process per request, in its own session/process group
- Concurrent line capture of stdout and stderr into a log sink
- Optional execution deadline enforced by a ``Watchdog`` (SIGKILL)
- A ``Trace-ID`` trailer written to the caller's output

Key design points:
- Both drain tasks must reach EOF before the process is reaped, so no
  buffered output is lost when the child exits
- The environment is replaced, never inherited: an empty request
  environment gives the child an empty environment
- Cancelling ``run()`` kills and reaps the child before the cancellation
  propagates
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import signal
import subprocess
import sys
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import IO, Any

import anyio

from ..sinks.base import LogRecord, LogSink, StreamName, post_record
from .drain import drain_stream
from .types import (
    FunctionRequest,
    InvocationResult,
    InvocationStatus,
    RunnerConfig,
    SetupError,
    StartError,
    WaitError,
    trailer_for,
)
from .watchdog import Watchdog

__all__ = [
    "ForkFunctionRunner",
    "FunctionRunner",
    "IO_FINISHED_MESSAGE",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

# Control record posted once both pipes reached EOF
IO_FINISHED_MESSAGE = "stdio capture completed"

STDIN_CHUNK_SIZE = 64 * 1024

# Errors from process creation that mean the pipes could not be allocated
_SETUP_ERRNOS = frozenset({errno.EMFILE, errno.ENFILE})


def _is_setup_failure(exc: BaseException) -> bool:
    if isinstance(exc, OSError):
        return exc.errno in _SETUP_ERRNOS
    return isinstance(exc, ValueError)


class _RequestInput:
    """The request input, read from worker threads and closed at most once.

    A blocking ``read`` cannot be interrupted, and closing a buffered reader
    waits for the read in flight to release its lock. ``close()`` therefore
    never blocks: while a read is in flight it only marks the close as
    pending, and the reading thread closes the source once its read returns.
    """

    def __init__(self, source: IO[bytes] | None) -> None:
        self._source = source
        self._read = getattr(source, "read1", None) or getattr(source, "read", None)
        self._lock = threading.Lock()
        self._reading = False
        self._close_pending = False
        self._closed = source is None

    def read(self, size: int) -> bytes:
        """Blocking read of up to ``size`` bytes; ``b""`` once closed."""
        with self._lock:
            if self._closed:
                return b""
            self._reading = True
        try:
            return self._read(size)
        finally:
            with self._lock:
                self._reading = False
                close_now = self._close_pending
                self._close_pending = False
            if close_now:
                self._close_source()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._reading:
                self._close_pending = True
                logger.debug("Function input read still blocked, deferring close")
                return
        self._close_source()

    def _close_source(self) -> None:
        try:
            self._source.close()
        except OSError as e:
            logger.warning(f"Error closing function input: {e}")


class FunctionRunner(ABC):
    """Runs one function invocation per call."""

    @abstractmethod
    async def run(
        self,
        request: FunctionRequest,
        config: RunnerConfig | None = None,
    ) -> InvocationResult:
        """Run ``request`` to completion and report the outcome."""


@dataclass
class ForkFunctionRunner(FunctionRunner):
    """Forks a process for each invocation.

    The sink is shared by every invocation run through this runner and is
    owned by the application: the runner never closes it.

    Example:
        sink = FluentLogSink()
        runner = ForkFunctionRunner(sink, RunnerConfig(exec_timeout=5.0))
        result = await runner.run(FunctionRequest(
            process="echo",
            arguments=["hello"],
            output=sys.stdout.buffer,
            trace_id="abc123",
        ))
        result.raise_for_status()
    """

    sink: LogSink
    config: RunnerConfig = field(default_factory=RunnerConfig)

    async def run(
        self,
        request: FunctionRequest,
        config: RunnerConfig | None = None,
    ) -> InvocationResult:
        """Run ``request`` and return its result.

        Failures are returned inside the result, not raised. Only
        cancellation of the calling task propagates.

        Args:
            request: What to run
            config: Overrides the runner's default config for this call

        Returns:
            Success, or a setup/start/wait failure
        """
        config = config or self.config
        trace_id = request.trace_id
        request_input = _RequestInput(request.input)
        process: asyncio.subprocess.Process | None = None
        watchdog: Watchdog | None = None
        feeder: asyncio.Task[None] | None = None

        logger.info(f"Running {request.process} trace_id={trace_id}")
        if request.content_length is not None:
            logger.debug(f"Declared input length={request.content_length} trace_id={trace_id}")

        start = time.monotonic()
        try:
            if config.has_deadline:
                watchdog = Watchdog(
                    config.exec_timeout,
                    lambda: self._kill(process),
                    label=f"trace_id={trace_id}",
                )
                watchdog.arm()

            start_error: BaseException | None = None
            try:
                process = await asyncio.create_subprocess_exec(
                    *request.argv,
                    stdin=(
                        asyncio.subprocess.PIPE
                        if request.input is not None
                        else asyncio.subprocess.DEVNULL
                    ),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=request.env_mapping(),
                    limit=config.max_line_bytes,
                    **self._build_subprocess_kwargs(),
                )
            except (OSError, ValueError) as e:
                if _is_setup_failure(e):
                    logger.error(f"Setup error for {request.process}: {e}")
                    return InvocationResult(
                        trace_id=trace_id,
                        status=InvocationStatus.SETUP_FAILED,
                        duration=time.monotonic() - start,
                        error=SetupError(e, trace_id),
                    )
                start_error = e

            if process is not None:
                logger.debug(f"Started subprocess pid={process.pid} trace_id={trace_id}")
                if watchdog is not None and watchdog.fired:
                    # deadline expired while the process was being created
                    self._kill(process)
                if request.input is not None and process.stdin is not None:
                    feeder = asyncio.create_task(
                        self._feed_stdin(request_input, process.stdin, trace_id)
                    )

            # Join barrier: both pipes must reach EOF before anything else
            async with anyio.create_task_group() as tg:
                tg.start_soon(
                    drain_stream,
                    process.stdout if process is not None else None,
                    StreamName.STDOUT,
                    trace_id,
                    self.sink,
                )
                tg.start_soon(
                    drain_stream,
                    process.stderr if process is not None else None,
                    StreamName.STDERR,
                    trace_id,
                    self.sink,
                )

            if process is None:
                logger.error(f"Starting error: {start_error}")
                self._post_control(trace_id, str(start_error))
                return InvocationResult(
                    trace_id=trace_id,
                    status=InvocationStatus.START_FAILED,
                    duration=time.monotonic() - start,
                    error=StartError(start_error, trace_id),
                )

            self._post_control(trace_id, IO_FINISHED_MESSAGE)

            returncode = await process.wait()
            duration = time.monotonic() - start
            logger.info(f"Took {duration:.6f} secs trace_id={trace_id}")

            if watchdog is not None:
                watchdog.disarm()
            await self._stop_feeder(feeder)
            request_input.close()

            self._write_trailer(request, trace_id)

            timed_out = watchdog is not None and watchdog.fired
            if returncode == 0:
                return InvocationResult(
                    trace_id=trace_id,
                    status=InvocationStatus.SUCCESS,
                    returncode=returncode,
                    duration=duration,
                    timed_out=timed_out,
                )

            error = WaitError(returncode, trace_id, timed_out=timed_out)
            logger.error(f"Function {request.process} failed: {error} trace_id={trace_id}")
            return InvocationResult(
                trace_id=trace_id,
                status=InvocationStatus.WAIT_FAILED,
                returncode=returncode,
                duration=duration,
                timed_out=timed_out,
                error=error,
            )

        finally:
            if watchdog is not None:
                watchdog.disarm()
            await self._safe_cleanup(process, feeder)
            request_input.close()

    def _post_control(self, trace_id: str, message: str) -> None:
        try:
            post_record(self.sink, LogRecord(trace_id, StreamName.CONTROL, message))
        except Exception as e:
            logger.warning(f"Log sink rejected control record trace_id={trace_id}: {e}")

    def _write_trailer(self, request: FunctionRequest, trace_id: str) -> None:
        # The outcome is already decided; a gone caller must not change it
        try:
            request.output.write(trailer_for(trace_id))
        except (OSError, ValueError) as e:
            logger.error(f"Error writing trailer trace_id={trace_id}: {e}")

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        """Platform-specific isolation kwargs for ``create_subprocess_exec``."""
        kwargs: dict[str, Any] = {}
        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # New session, so the kill reaches the whole process group
            kwargs["start_new_session"] = True
        return kwargs

    async def _feed_stdin(
        self,
        source: _RequestInput,
        stdin: asyncio.StreamWriter,
        trace_id: str,
    ) -> None:
        """Copy ``source`` into the child's stdin, then close the pipe."""
        try:
            while True:
                chunk = await asyncio.to_thread(source.read, STDIN_CHUNK_SIZE)
                if not chunk:
                    break
                stdin.write(chunk)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"Function closed stdin early trace_id={trace_id}: {e}")
        except (OSError, ValueError) as e:
            logger.warning(f"Error forwarding input trace_id={trace_id}: {e}")
        finally:
            stdin.close()
            try:
                await stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                pass

    async def _stop_feeder(self, feeder: asyncio.Task[None] | None) -> None:
        if feeder is None or feeder.done():
            return
        feeder.cancel()
        try:
            await feeder
        except asyncio.CancelledError:
            pass

    def _kill(self, process: asyncio.subprocess.Process | None) -> None:
        """Unconditionally kill ``process`` and its process group."""
        if process is None:
            logger.warning("ExecTimeout fired before the function started")
            return
        if process.returncode is not None:
            return

        if IS_WINDOWS:
            process.kill()
            return

        # Session leader, so its pid is the group id
        try:
            os.killpg(process.pid, signal.SIGKILL)
            logger.debug(f"Sent SIGKILL to process group pgid={process.pid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to kill: {e}")
            process.kill()

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
        feeder: asyncio.Task[None] | None,
    ) -> None:
        """Stop the feeder and reap a still-running child, shielded from cancellation."""
        try:
            await asyncio.shield(self._do_cleanup(process, feeder))
        except asyncio.CancelledError:
            await self._do_cleanup(process, feeder)
            raise

    async def _do_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
        feeder: asyncio.Task[None] | None,
    ) -> None:
        await self._stop_feeder(feeder)
        if process is None or process.returncode is not None:
            return

        logger.warning(f"Killing abandoned subprocess pid={process.pid}")
        try:
            self._kill(process)
        except ProcessLookupError:
            pass
        await process.wait()
