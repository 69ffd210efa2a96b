"""
Poll Scheduler

Self-rescheduling tick chain for the detection loop:

    run tick -> sleep(interval) -> yield to the loop -> run tick -> ...

The next tick is only armed after the previous one has produced its result,
so there is never more than one tick in flight. Stopping flips the
cancellation token and cancels the pending sleep; a stale wake-up checks the
token before re-arming.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from invigilator.utils.logger import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """One-shot cancellation flag shared by a scheduler run."""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class PollScheduler:
    """
    Runs an async `tick` repeatedly with a fixed minimum gap.

    Tick exceptions are logged and the chain continues.

    Example:
        >>> scheduler = PollScheduler(detector.tick, interval=0.3)
        >>> scheduler.start()
        >>> ...
        >>> scheduler.stop()
        >>> await scheduler.join()
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[None]],
        interval: float = 0.3,
        name: str = "poll",
    ):
        self.tick = tick
        self.interval = interval
        self.name = name

        self.ticks = 0
        self.errors = 0
        self.skipped = 0

        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None
        self._in_flight = False

    @property
    def running(self) -> bool:
        return self._token is not None and not self._token.cancelled

    def start(self) -> bool:
        """
        Arm the chain on the running event loop.

        Returns:
            False if already running
        """
        if self.running:
            return False

        token = CancellationToken()
        self._token = token
        self._task = asyncio.get_running_loop().create_task(self._run(token))
        logger.debug(f"▶️ {self.name} scheduler started ({self.interval * 1000:.0f}ms)")
        return True

    def stop(self):
        """Cancel the pending tick. Safe to call repeatedly."""
        if self._token is not None:
            self._token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug(f"⏹️ {self.name} scheduler stopped after {self.ticks} ticks")

    async def join(self):
        """Wait for the chain to wind down after `stop()`."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        finally:
            if self._task is task:
                self._task = None

    async def run_once(self) -> bool:
        """
        Run a single tick unless one is already in flight.

        Returns:
            True if the tick ran
        """
        if self._in_flight:
            self.skipped += 1
            return False

        self._in_flight = True
        try:
            await self.tick()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.errors += 1
            logger.error(f"❌ {self.name} tick failed: {e}")
        finally:
            self._in_flight = False

        self.ticks += 1
        return True

    async def _run(self, token: CancellationToken):
        while not token.cancelled:
            await self.run_once()
            if token.cancelled:
                break

            # Timer, then a frame-aligned yield before re-arming
            await asyncio.sleep(self.interval)
            await asyncio.sleep(0)
