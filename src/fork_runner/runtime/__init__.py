"""Runtime module for forked function invocations.

This module spawns one child process per request, drains its stdout and
stderr into a log sink, enforces the execution timeout and reports the
outcome.
"""

from __future__ import annotations

from .process_runner import IO_FINISHED_MESSAGE, ForkFunctionRunner, FunctionRunner
from .types import (
    FunctionRequest,
    InvocationError,
    InvocationResult,
    InvocationStatus,
    RunnerConfig,
    SetupError,
    StartError,
    WaitError,
    trailer_for,
)
from .watchdog import Watchdog, WatchdogState

__all__ = [
    "IO_FINISHED_MESSAGE",
    "ForkFunctionRunner",
    "FunctionRequest",
    "FunctionRunner",
    "InvocationError",
    "InvocationResult",
    "InvocationStatus",
    "RunnerConfig",
    "SetupError",
    "StartError",
    "WaitError",
    "Watchdog",
    "WatchdogState",
    "trailer_for",
]
