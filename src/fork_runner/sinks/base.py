"""Log sink contract and record type.

A log sink receives line records captured from a function's stdout/stderr,
plus the runner's own lifecycle records on the ``control`` pipe. Records are
posted fire-and-forget: ``post()`` must not block meaningfully and must be
safe to call from many concurrent invocations.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

__all__ = [
    "LogRecord",
    "LogSink",
    "StreamName",
    "post_record",
]


class StreamName(str, Enum):
    """Pipe a record came from."""

    STDOUT = "stdout"
    STDERR = "stderr"
    CONTROL = "control"


@dataclass(frozen=True)
class LogRecord:
    """One record correlated with an invocation.

    Attributes:
        trace_id: Invocation trace identifier, used as the sink tag
        stream: Pipe the message was read from
        message: One line of output (without line terminator) or a
            lifecycle message
    """

    trace_id: str
    stream: StreamName
    message: str

    def to_fields(self) -> dict[str, str]:
        """Fields as posted to the sink."""
        return {"pipe": self.stream.value, "message": self.message}

    @classmethod
    def from_post(cls, tag: str, fields: Mapping[str, str]) -> "LogRecord":
        """Rebuild a record from a ``post()`` call."""
        return cls(
            trace_id=tag,
            stream=StreamName(fields.get("pipe", StreamName.CONTROL.value)),
            message=fields.get("message", ""),
        )


@runtime_checkable
class LogSink(Protocol):
    """Structured log destination shared by all invocations."""

    def post(self, tag: str, fields: Mapping[str, str]) -> None:
        """Post one tagged record. Never raises on delivery failure."""
        ...

    def close(self) -> None:
        """Flush and release the sink."""
        ...


def post_record(sink: LogSink, record: LogRecord) -> None:
    """Post a ``LogRecord`` through the plain ``post()`` contract."""
    sink.post(record.trace_id, record.to_fields())
