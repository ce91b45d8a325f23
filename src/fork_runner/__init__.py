"""fork-runner: run a function as a child process, ship its output to a log sink.

Basic usage:
    from fork_runner import ForkFunctionRunner, FunctionRequest, RunnerConfig
    from fork_runner.sinks.fluent import FluentLogSink

    sink = FluentLogSink()
    runner = ForkFunctionRunner(sink, RunnerConfig(exec_timeout=10.0))
    result = await runner.run(FunctionRequest(
        process="/usr/bin/env",
        output=response_body,
        trace_id=trace_id,
    ))
    sink.close()
"""

from __future__ import annotations

__version__ = "0.1.0"

from .runtime import (
    ForkFunctionRunner,
    FunctionRequest,
    FunctionRunner,
    InvocationError,
    InvocationResult,
    InvocationStatus,
    RunnerConfig,
    SetupError,
    StartError,
    WaitError,
)
from .sinks import ConsoleLogSink, LogRecord, LogSink, MemoryLogSink, StreamName

__all__ = [
    "__version__",
    "ConsoleLogSink",
    "ForkFunctionRunner",
    "FunctionRequest",
    "FunctionRunner",
    "InvocationError",
    "InvocationResult",
    "InvocationStatus",
    "LogRecord",
    "LogSink",
    "MemoryLogSink",
    "RunnerConfig",
    "SetupError",
    "StartError",
    "StreamName",
    "WaitError",
]
