"""Log sink that writes records through the ``logging`` module.

Used when no log collector is reachable, e.g. when running the CLI
locally. The logging handlers do their own locking, which makes the sink
safe for concurrent callers.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

__all__ = ["ConsoleLogSink", "RECORD_LOGGER_NAME"]

RECORD_LOGGER_NAME = "fork_runner.records"


class ConsoleLogSink:
    """Forward records to a logger as ``[tag] pipe: message`` lines.

    Records from stderr and control pipes are logged at the same level as
    stdout; the pipe name is part of the line.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        level: int = logging.INFO,
    ) -> None:
        self._logger = logger or logging.getLogger(RECORD_LOGGER_NAME)
        self._level = level

    def post(self, tag: str, fields: Mapping[str, str]) -> None:
        self._logger.log(
            self._level,
            "[%s] %s: %s",
            tag,
            fields.get("pipe", "-"),
            fields.get("message", ""),
        )

    def close(self) -> None:
        for handler in self._logger.handlers:
            handler.flush()
