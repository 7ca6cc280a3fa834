"""
Scan loop scheduler.

Runs scan -> execute on a fixed cadence while the running flag is set. One
iteration always completes before the next begins.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from cexdex.logger import get_logger


logger = get_logger("scheduler")


@dataclass
class BackoffPolicy:
    """
    Two-state delay policy: the normal interval after a clean iteration and
    the error interval after a failed one.

    When ``max_error_seconds`` is set, consecutive errors double the error
    delay up to that cap.
    """
    normal_seconds: float = 1.0
    error_seconds: float = 5.0
    max_error_seconds: Optional[float] = None

    def next_delay(self, had_error: bool, consecutive_errors: int = 1) -> float:
        if not had_error:
            return self.normal_seconds
        if self.max_error_seconds is None:
            return self.error_seconds
        delay = self.error_seconds * (2 ** max(0, consecutive_errors - 1))
        return min(delay, self.max_error_seconds)


class ScanLoopScheduler:
    """
    Drives one cycle callable in a loop until stopped.

    ``stop()`` is cooperative: it clears the running flag and wakes the loop
    if it is sleeping, but never interrupts an in-flight cycle.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[object]],
        backoff: BackoffPolicy,
    ):
        self._cycle = cycle
        self.backoff = backoff

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()

        # Tracking
        self._iterations = 0
        self._errors = 0
        self._consecutive_errors = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the loop as a background task."""
        if self._running:
            logger.warning("Scan loop already running")
            return

        self._running = True
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="scan-loop")
        logger.info(
            "Scan loop started",
            interval_s=self.backoff.normal_seconds,
            error_backoff_s=self.backoff.error_seconds,
        )

    def stop(self) -> None:
        """Clear the running flag; the loop exits after its current iteration."""
        if not self._running:
            return
        logger.info("Stopping scan loop")
        self._running = False
        self._wake.set()

    async def wait_stopped(self) -> None:
        """Wait for the loop task to exit."""
        if self._task is not None:
            await self._task
            self._task = None

    async def run_once(self) -> bool:
        """
        Run a single iteration.

        Returns:
            True if the iteration completed without error
        """
        self._iterations += 1
        try:
            await self._cycle()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._errors += 1
            self._consecutive_errors += 1
            logger.error("Error in arbitrage loop", error=str(e), exc_info=True)
            return False

        self._consecutive_errors = 0
        return True

    async def _run_loop(self) -> None:
        while self._running:
            ok = await self.run_once()
            if not self._running:
                break

            delay = self.backoff.next_delay(not ok, self._consecutive_errors)
            await self._sleep(delay)

        logger.info("Scan loop stopped", iterations=self._iterations, errors=self._errors)

    async def _sleep(self, seconds: float) -> None:
        """Sleep, returning early if stop() is called."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    @property
    def metrics(self) -> dict:
        return {
            "iterations": self._iterations,
            "errors": self._errors,
            "consecutive_errors": self._consecutive_errors,
        }
