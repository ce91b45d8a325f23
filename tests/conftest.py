"""Pytest configuration and fixtures."""

from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to Python path (development checkout)
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
CHATTY_FUNCTION = FIXTURES_DIR / "chatty_function.py"

from fork_runner.sinks.memory import MemoryLogSink  # noqa: E402


class TrackingInput(io.BytesIO):
    """BytesIO that counts close() calls."""

    def __init__(self, data: bytes = b"") -> None:
        super().__init__(data)
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1
        super().close()


class TrackingOutput(io.BytesIO):
    """BytesIO that counts write() calls and refuses to be closed."""

    def __init__(self) -> None:
        super().__init__()
        self.write_calls = 0
        self.close_calls = 0

    def write(self, data) -> int:  # type: ignore[override]
        self.write_calls += 1
        return super().write(data)

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def sink() -> MemoryLogSink:
    """Fresh in-memory log sink."""
    return MemoryLogSink()


@pytest.fixture
def output() -> TrackingOutput:
    """Caller output sink."""
    return TrackingOutput()


@pytest.fixture
def chatty_argv() -> list[str]:
    """Command prefix running the fake function with this interpreter."""
    return [sys.executable, str(CHATTY_FUNCTION)]
