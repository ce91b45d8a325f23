"""Stream drain task.

Reads one child pipe line by line until EOF and posts every line to the
log sink. One drain task runs per pipe: stdout and stderr are independent
OS pipes, and reading them from a single task can leave the other pipe full
and block the child.
"""

from __future__ import annotations

import asyncio
import logging

from ..sinks.base import LogRecord, LogSink, StreamName, post_record

__all__ = ["drain_stream"]

logger = logging.getLogger(__name__)

# Chunk size used when discarding the remainder of a failed stream
DISCARD_CHUNK_SIZE = 64 * 1024


def _decode_line(raw: bytes) -> str:
    line = raw.decode("utf-8", errors="replace")
    if line.endswith("\n"):
        line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
    return line


def _post(sink: LogSink, record: LogRecord) -> None:
    try:
        post_record(sink, record)
    except Exception as e:
        logger.warning(f"Log sink rejected record trace_id={record.trace_id}: {e}")


async def _discard(stream: asyncio.StreamReader) -> None:
    """Consume and drop what is left of ``stream``."""
    try:
        while await stream.read(DISCARD_CHUNK_SIZE):
            pass
    except (OSError, ValueError) as e:
        logger.debug(f"Error discarding stream remainder: {e}")


async def drain_stream(
    stream: asyncio.StreamReader | None,
    name: StreamName,
    trace_id: str,
    sink: LogSink,
) -> int:
    """Forward every line of ``stream`` to ``sink`` until end-of-stream.

    A read error is posted as one extra record carrying the error text, on
    the same pipe. The rest of the stream is then read and dropped so the
    child can keep writing and exit.

    Args:
        stream: Pipe to read; None completes immediately (process never
            started)
        name: Pipe name used in the records
        trace_id: Tag for every record
        sink: Destination of the records

    Returns:
        Number of lines forwarded
    """
    if stream is None:
        return 0

    logger.debug(f"Started logging {name.value} from function. trace_id={trace_id}")

    count = 0
    while True:
        try:
            raw = await stream.readline()
        except (ValueError, asyncio.LimitOverrunError, OSError) as e:
            # readline() turns a limit overrun into ValueError
            logger.warning(f"Error reading {name.value} trace_id={trace_id}: {e}")
            _post(sink, LogRecord(trace_id, name, str(e)))
            await _discard(stream)
            break

        if not raw:
            break

        _post(sink, LogRecord(trace_id, name, _decode_line(raw)))
        count += 1

    logger.debug(f"Finished logging {name.value} lines={count} trace_id={trace_id}")
    return count
