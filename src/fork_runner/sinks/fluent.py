"""fluentd log sink.

Records are emitted with ``fluent-logger`` under the tag
``<tag_prefix>.<trace_id>``. In async mode the sender queues records and a
background thread ships them, so ``post()`` never waits on the network.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from fluent import asyncsender, sender

__all__ = ["FluentLogSink", "FluentSettings"]

logger = logging.getLogger(__name__)

DEFAULT_FLUENT_HOST = "localhost"
DEFAULT_FLUENT_PORT = 24224
DEFAULT_TAG_PREFIX = "watchdog"


@dataclass(frozen=True)
class FluentSettings:
    """Connection parameters for the fluentd collector.

    Attributes:
        host: Collector host
        port: Collector forward-protocol port
        tag_prefix: Prefix prepended to every trace-id tag
        timeout: Socket timeout in seconds
        async_mode: Queue records and send from a background thread
        queue_circular: Drop the oldest queued record instead of blocking
            when the async queue is full
    """

    host: str = DEFAULT_FLUENT_HOST
    port: int = DEFAULT_FLUENT_PORT
    tag_prefix: str = DEFAULT_TAG_PREFIX
    timeout: float = 3.0
    async_mode: bool = True
    queue_circular: bool = False


class FluentLogSink:
    """Log sink backed by a single long-lived fluent sender.

    One instance is meant to be created at application start and shared by
    every invocation; ``close()`` is called by the application at shutdown.
    """

    def __init__(
        self,
        settings: FluentSettings | None = None,
        *,
        fluent_sender: Any = None,
    ) -> None:
        self.settings = settings or FluentSettings()
        self._sender = (
            fluent_sender if fluent_sender is not None else self._create_sender(self.settings)
        )
        logger.debug(
            f"Fluent sink ready host={self.settings.host} "
            f"port={self.settings.port} prefix={self.settings.tag_prefix} "
            f"async={self.settings.async_mode}"
        )

    @staticmethod
    def _create_sender(settings: FluentSettings) -> Any:
        if settings.async_mode:
            return asyncsender.FluentSender(
                settings.tag_prefix,
                host=settings.host,
                port=settings.port,
                timeout=settings.timeout,
                queue_circular=settings.queue_circular,
            )
        return sender.FluentSender(
            settings.tag_prefix,
            host=settings.host,
            port=settings.port,
            timeout=settings.timeout,
        )

    def post(self, tag: str, fields: Mapping[str, str]) -> None:
        try:
            sent = self._sender.emit(tag, dict(fields))
        except Exception as e:
            logger.warning(f"Fluent emit raised for tag={tag}: {e}")
            return

        if not sent:
            logger.warning(
                f"Fluent emit failed for tag={tag}: {self._sender.last_error}"
            )
            self._sender.clear_last_error()

    def close(self) -> None:
        try:
            self._sender.close()
        except Exception as e:
            logger.warning(f"Error closing fluent sender: {e}")
