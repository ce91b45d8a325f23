"""fork-runner environment configuration.

Environment variables:
    FR_EXEC_TIMEOUT: Execution deadline per invocation
        - Plain seconds ("1.5") or with a unit suffix: ms, s, m, h ("100ms", "2m")
        - 0 / unset = unbounded (no watchdog)

    FR_MAX_LINE_BYTES: Longest stdout/stderr line read before a read error
        - Default 1048576 (1 MiB)

    FR_LOG_SINK: Destination of captured output
        - fluent = fluentd collector (default)
        - console = this process's log output
        - memory = kept in memory (embedding/tests)

    FR_FLUENT_HOST / FR_FLUENT_PORT: fluentd collector address
        - Default localhost:24224

    FR_FLUENT_TAG_PREFIX: Prefix of every record tag
        - Default "watchdog"; records are tagged "<prefix>.<trace id>"

    FR_FLUENT_TIMEOUT: fluentd socket timeout in seconds
        - Default 3.0

    FR_FLUENT_ASYNC: Queue records and send them from a background thread
        - true/1/yes = on (default)

    FR_FLUENT_QUEUE_CIRCULAR: Drop oldest queued records when the queue is full
        - false (default) = block the poster instead

    FR_LOG_DEBUG: Debug logging
        - true/1/yes = debug level, written to a temp file
        - false/0/no = info level on stderr (default)
"""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from .runtime.types import DEFAULT_MAX_LINE_BYTES, RunnerConfig

if TYPE_CHECKING:
    from .sinks.fluent import FluentSettings

__all__ = ["Config", "load_config", "get_config", "reload_config", "parse_duration"]

SUPPORTED_SINKS = frozenset({"fluent", "console", "memory"})

_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d*)?|\.\d+)\s*(ms|s|m|h)?\s*$", re.IGNORECASE)


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def parse_duration(value: str | None, default: float = 0.0) -> float:
    """Parse a duration into seconds.

    Accepts plain seconds or a number with an ``ms``/``s``/``m``/``h``
    suffix. Invalid values return ``default``.
    """
    if not value or not value.strip():
        return default
    match = _DURATION_RE.match(value)
    if match is None:
        return default
    number, unit = match.groups()
    return float(number) * _DURATION_UNITS[(unit or "s").lower()]


def _parse_int(value: str | None, default: int, minimum: int = 1) -> int:
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _parse_float(value: str | None, default: float) -> float:
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_sink(value: str | None) -> str:
    if not value:
        return "fluent"
    sink = value.strip().lower()
    return sink if sink in SUPPORTED_SINKS else "fluent"


@dataclass
class Config:
    """fork-runner configuration.

    Attributes:
        exec_timeout: Execution deadline in seconds (<= 0 = unbounded)
        max_line_bytes: Line read limit for captured output
        log_sink: Sink name (fluent/console/memory)
        fluent_host: fluentd host
        fluent_port: fluentd port
        fluent_tag_prefix: Tag prefix for records
        fluent_timeout: fluentd socket timeout in seconds
        fluent_async: Use the queued async sender
        fluent_queue_circular: Drop oldest records when the queue is full
        log_debug: Debug logging to a temp file
        log_file: Log file path (set when log_debug=True)
    """

    exec_timeout: float = 0.0
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    log_sink: str = "fluent"
    fluent_host: str = "localhost"
    fluent_port: int = 24224
    fluent_tag_prefix: str = "watchdog"
    fluent_timeout: float = 3.0
    fluent_async: bool = True
    fluent_queue_circular: bool = False
    log_debug: bool = False
    log_file: str | None = None

    def runner_config(self) -> RunnerConfig:
        """Runner settings derived from this config."""
        return RunnerConfig(
            exec_timeout=self.exec_timeout,
            max_line_bytes=self.max_line_bytes,
        )

    def fluent_settings(self) -> "FluentSettings":
        """fluentd connection settings derived from this config."""
        from .sinks.fluent import FluentSettings

        return FluentSettings(
            host=self.fluent_host,
            port=self.fluent_port,
            tag_prefix=self.fluent_tag_prefix,
            timeout=self.fluent_timeout,
            async_mode=self.fluent_async,
            queue_circular=self.fluent_queue_circular,
        )

    def __repr__(self) -> str:
        return (
            f"Config(exec_timeout={self.exec_timeout}, "
            f"max_line_bytes={self.max_line_bytes}, "
            f"log_sink={self.log_sink}, "
            f"fluent={self.fluent_host}:{self.fluent_port}, "
            f"fluent_tag_prefix={self.fluent_tag_prefix}, "
            f"fluent_async={self.fluent_async}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """Debug log path under the system temp dir."""
    log_dir = Path(tempfile.gettempdir()) / "fork-runner"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"fr_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("FR_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        exec_timeout=parse_duration(os.environ.get("FR_EXEC_TIMEOUT"), default=0.0),
        max_line_bytes=_parse_int(
            os.environ.get("FR_MAX_LINE_BYTES"), DEFAULT_MAX_LINE_BYTES
        ),
        log_sink=_parse_sink(os.environ.get("FR_LOG_SINK")),
        fluent_host=os.environ.get("FR_FLUENT_HOST") or "localhost",
        fluent_port=_parse_int(os.environ.get("FR_FLUENT_PORT"), 24224),
        fluent_tag_prefix=os.environ.get("FR_FLUENT_TAG_PREFIX") or "watchdog",
        fluent_timeout=_parse_float(os.environ.get("FR_FLUENT_TIMEOUT"), 3.0),
        fluent_async=_parse_bool(os.environ.get("FR_FLUENT_ASYNC"), default=True),
        fluent_queue_circular=_parse_bool(
            os.environ.get("FR_FLUENT_QUEUE_CIRCULAR"), default=False
        ),
        log_debug=log_debug,
        log_file=log_file,
    )


# Global config instance (lazily loaded)
_config: Config | None = None


def get_config() -> Config:
    """Return the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
