"""In-memory log sink."""

from __future__ import annotations

import threading
from collections.abc import Mapping

from .base import LogRecord, StreamName

__all__ = ["MemoryLogSink"]


class MemoryLogSink:
    """Keeps every posted record in a list, in posting order.

    Thread-safe: all access goes through one lock, so the sink can be
    shared by concurrent invocations (including fluent-style worker
    threads posting from outside the event loop).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[LogRecord] = []
        self.closed = False

    def post(self, tag: str, fields: Mapping[str, str]) -> None:
        record = LogRecord.from_post(tag, fields)
        with self._lock:
            self._records.append(record)

    def close(self) -> None:
        self.closed = True

    @property
    def records(self) -> list[LogRecord]:
        """Snapshot of all records."""
        with self._lock:
            return list(self._records)

    def records_for(
        self,
        trace_id: str,
        stream: StreamName | None = None,
    ) -> list[LogRecord]:
        """Records of one invocation, optionally filtered by pipe."""
        return [
            r for r in self.records
            if r.trace_id == trace_id and (stream is None or r.stream == stream)
        ]

    def messages(self, trace_id: str, stream: StreamName) -> list[str]:
        """Messages of one invocation and pipe."""
        return [r.message for r in self.records_for(trace_id, stream)]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
