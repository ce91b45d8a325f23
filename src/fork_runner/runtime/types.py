"""Invocation request, result and error types.

fork-runner runtime module v0.1.0

A ``FunctionRequest`` describes one invocation; it is built by the caller
and never mutated by the runner. ``InvocationResult`` is produced once per
``run()`` and carries either success or a typed failure:

- ``SetupError``: pipes or arguments could not be prepared, no process
- ``StartError``: the OS refused to create the process
- ``WaitError``: the process exited non-zero or was killed
"""

from __future__ import annotations

import signal
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import IO

__all__ = [
    "DEFAULT_MAX_LINE_BYTES",
    "FunctionRequest",
    "InvocationError",
    "InvocationResult",
    "InvocationStatus",
    "RunnerConfig",
    "SetupError",
    "StartError",
    "WaitError",
    "trailer_for",
]

DEFAULT_MAX_LINE_BYTES = 1024 * 1024


def trailer_for(trace_id: str) -> bytes:
    """Trailer written to the caller's output after an invocation."""
    return f"Trace-ID: {trace_id}".encode("ascii", errors="replace")


@dataclass(frozen=True)
class FunctionRequest:
    """Description of one function invocation.

    Attributes:
        process: Executable path or name (required)
        output: Binary sink receiving the trailer; never closed by the runner
        arguments: Arguments passed after the executable
        environment: ``KEY=VALUE`` entries replacing the child's environment.
            Empty means an empty environment, not inheritance.
        input: Optional binary source fed to the child's stdin; closed by
            the runner exactly once
        content_length: Declared size of ``input``, informational only
        trace_id: Opaque label correlating log records and the trailer
    """

    process: str
    output: IO[bytes]
    arguments: Sequence[str] = ()
    environment: Sequence[str] = ()
    input: IO[bytes] | None = None
    content_length: int | None = None
    trace_id: str = ""

    def __post_init__(self) -> None:
        if not self.process:
            raise ValueError("process is required")
        # tuples keep the request immutable even if the caller passed lists
        object.__setattr__(self, "arguments", tuple(self.arguments))
        object.__setattr__(self, "environment", tuple(self.environment))
        for entry in self.environment:
            if "=" not in entry:
                raise ValueError(f"environment entry is not KEY=VALUE: {entry!r}")

    def env_mapping(self) -> dict[str, str]:
        """Environment as a mapping; later duplicates win."""
        env: dict[str, str] = {}
        for entry in self.environment:
            key, _, value = entry.partition("=")
            env[key] = value
        return env

    @property
    def argv(self) -> list[str]:
        return [self.process, *self.arguments]


@dataclass(frozen=True)
class RunnerConfig:
    """Per-runner execution settings.

    Attributes:
        exec_timeout: Wall-clock deadline in seconds; <= 0 means unbounded
        max_line_bytes: Longest line a drain task reads before reporting a
            read failure
    """

    exec_timeout: float = 0.0
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES

    @property
    def has_deadline(self) -> bool:
        return self.exec_timeout > 0


class InvocationStatus(str, Enum):
    """Outcome of one invocation."""

    SUCCESS = "success"
    SETUP_FAILED = "setup_failed"
    START_FAILED = "start_failed"
    WAIT_FAILED = "wait_failed"


class InvocationError(Exception):
    """Base class for invocation failures."""

    status: InvocationStatus = InvocationStatus.WAIT_FAILED

    def __init__(self, message: str, trace_id: str = "") -> None:
        super().__init__(message)
        self.trace_id = trace_id


class SetupError(InvocationError):
    """Pipes or arguments could not be prepared; no process was created."""

    status = InvocationStatus.SETUP_FAILED

    def __init__(self, cause: BaseException, trace_id: str = "") -> None:
        super().__init__(f"setup failed: {cause}", trace_id)
        self.cause = cause
        self.__cause__ = cause


class StartError(InvocationError):
    """The OS failed to create the process (bad path, permissions, ...)."""

    status = InvocationStatus.START_FAILED

    def __init__(self, cause: BaseException, trace_id: str = "") -> None:
        super().__init__(str(cause), trace_id)
        self.cause = cause
        self.__cause__ = cause


class WaitError(InvocationError):
    """The process exited with a non-zero status or was killed."""

    status = InvocationStatus.WAIT_FAILED

    def __init__(
        self,
        returncode: int,
        trace_id: str = "",
        timed_out: bool = False,
    ) -> None:
        super().__init__(self.describe(returncode), trace_id)
        self.returncode = returncode
        self.timed_out = timed_out

    @staticmethod
    def describe(returncode: int) -> str:
        if returncode >= 0:
            return f"exit status {returncode}"
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        return f"terminated by signal {name}"


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of ``ForkFunctionRunner.run()``.

    Attributes:
        trace_id: Trace identifier of the request
        status: Success or the failure class
        returncode: Exit status, negative signal number if killed, None if
            no process ran
        duration: Seconds from start attempt to completion
        timed_out: Whether the watchdog fired
        error: The typed failure, None on success
    """

    trace_id: str
    status: InvocationStatus
    returncode: int | None = None
    duration: float = 0.0
    timed_out: bool = False
    error: InvocationError | None = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.status is InvocationStatus.SUCCESS

    def raise_for_status(self) -> None:
        """Raise the carried error, if any."""
        if self.error is not None:
            raise self.error
