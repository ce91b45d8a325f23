"""Log sinks for captured function output.

Sinks implement the ``LogSink`` protocol: ``post(tag, fields)`` plus
``close()``. ``create_sink()`` picks one from configuration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import LogRecord, LogSink, StreamName, post_record
from .console import ConsoleLogSink
from .memory import MemoryLogSink

if TYPE_CHECKING:
    from ..config import Config

__all__ = [
    "ConsoleLogSink",
    "LogRecord",
    "LogSink",
    "MemoryLogSink",
    "StreamName",
    "create_sink",
    "post_record",
]


def create_sink(config: "Config") -> LogSink:
    """Create the sink selected by ``config.log_sink``."""
    if config.log_sink == "console":
        return ConsoleLogSink()
    if config.log_sink == "memory":
        return MemoryLogSink()

    # fluent-logger is only imported when actually used
    from .fluent import FluentLogSink

    return FluentLogSink(config.fluent_settings())
