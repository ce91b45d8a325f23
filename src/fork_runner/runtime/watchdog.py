"""Execution-timeout watchdog.

A cancellable timer: once armed it sleeps for the configured timeout and
then calls its kill callback. ``disarm()`` cancels the timer. Firing and
disarming are mutually exclusive; whichever happens first wins and the
other becomes a no-op.

State machine::

    IDLE --arm()--> ARMED --timeout--> FIRED
                      |
                      +----disarm()--> DISARMED
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

__all__ = ["Watchdog", "WatchdogState"]

logger = logging.getLogger(__name__)


class WatchdogState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRED = "fired"
    DISARMED = "disarmed"


class Watchdog:
    """Kill a process once ``timeout`` seconds have elapsed.

    Example:
        watchdog = Watchdog(5.0, kill_process)
        watchdog.arm()
        try:
            await process.wait()
        finally:
            watchdog.disarm()
        if watchdog.fired:
            ...

    Attributes:
        timeout: Seconds until the kill callback runs
        state: Current ``WatchdogState``
    """

    def __init__(
        self,
        timeout: float,
        on_timeout: Callable[[], None],
        *,
        label: str = "",
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"watchdog timeout must be positive, got {timeout}")
        self.timeout = timeout
        self.state = WatchdogState.IDLE
        self._on_timeout = on_timeout
        self._label = label
        self._task: asyncio.Task[None] | None = None

    @property
    def fired(self) -> bool:
        return self.state is WatchdogState.FIRED

    def arm(self) -> None:
        """Start the timer. Must be called from a running event loop."""
        if self.state is not WatchdogState.IDLE:
            raise RuntimeError(f"watchdog already {self.state.value}")
        self.state = WatchdogState.ARMED
        self._task = asyncio.create_task(self._countdown())

    def disarm(self) -> None:
        """Cancel the timer. Idempotent; no-op once fired."""
        if self.state is WatchdogState.ARMED:
            self.state = WatchdogState.DISARMED
            if self._task is not None and not self._task.done():
                self._task.cancel()

    async def _countdown(self) -> None:
        await asyncio.sleep(self.timeout)
        if self.state is not WatchdogState.ARMED:
            return
        self.state = WatchdogState.FIRED
        logger.warning(
            f"Function was killed by ExecTimeout: {self.timeout}s {self._label}".rstrip()
        )
        try:
            self._on_timeout()
        except Exception as e:
            logger.error(f"Error killing function due to ExecTimeout: {e}")
