"""
Countdown clock for quiz sessions.
Delivers one tick per time unit to a callback from a background asyncio task.
"""
import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class ClockLifecycleLogger:
    """Structured logging for countdown clock lifecycle events."""

    @staticmethod
    def log_clock_start(owner: str, interval: float) -> None:
        logger.info(
            f"Clock lifecycle: START - Owner {owner}, Interval {interval:.3f}s",
            extra={
                'event_type': 'clock_start',
                'owner': owner,
                'interval': interval,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_clock_tick(owner: str, tick_count: int) -> None:
        """Log tick events (throttled to avoid spam)."""
        if tick_count % 10 == 0:
            logger.debug(
                f"Clock lifecycle: TICK - Owner {owner}, Tick {tick_count}",
                extra={
                    'event_type': 'clock_tick',
                    'owner': owner,
                    'tick_count': tick_count,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_clock_stop(owner: str, reason: str, tick_count: int) -> None:
        logger.info(
            f"Clock lifecycle: STOP - Owner {owner}, Reason {reason}, Ticks delivered {tick_count}",
            extra={
                'event_type': 'clock_stop',
                'owner': owner,
                'reason': reason,
                'tick_count': tick_count,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_clock_error(owner: str, error_type: str, error_message: str) -> None:
        logger.error(
            f"Clock lifecycle: ERROR - Owner {owner}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'clock_error',
                'owner': owner,
                'error_type': error_type,
                'error_message': error_message,
                'timestamp': time.time()
            }
        )


class CountdownClock:
    """Periodic timer that drives a quiz session's tick()."""

    def __init__(self, interval: float = 1.0, owner: str = "session"):
        """
        Initialize the clock.

        Args:
            interval: Seconds between ticks
            owner: Label used in log records (e.g. the channel id)
        """
        if interval <= 0:
            raise ValueError("Clock interval must be positive")
        self.interval = interval
        self.owner = owner
        self._task: Optional[asyncio.Task] = None
        self._callback: Optional[Callable[[], Any]] = None
        self._is_stopped = True
        self._tick_count = 0

    def start(self, callback: Callable[[], Any]) -> None:
        """
        Start delivering ticks to callback. Must be called with a running event loop.

        Any previously running countdown is stopped first.
        """
        if self.is_running:
            self.stop(reason="restarted")

        self._callback = callback
        self._is_stopped = False
        self._tick_count = 0
        ClockLifecycleLogger.log_clock_start(self.owner, self.interval)
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self, reason: str = "stopped") -> None:
        """Stop the clock. Safe to call repeatedly and from inside the tick callback."""
        if self._is_stopped:
            return

        self._is_stopped = True
        self._callback = None

        task = self._task
        if task is not None and not task.done() and task is not self._current_task():
            task.cancel()

        ClockLifecycleLogger.log_clock_stop(self.owner, reason, self._tick_count)

    @property
    def is_running(self) -> bool:
        """True while ticks may still be delivered."""
        return not self._is_stopped and self._task is not None and not self._task.done()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    async def _run(self) -> None:
        try:
            while not self._is_stopped:
                await asyncio.sleep(self.interval)
                # stop() may have run while we slept
                if self._is_stopped or self._callback is None:
                    break

                self._tick_count += 1
                ClockLifecycleLogger.log_clock_tick(self.owner, self._tick_count)

                result = self._callback()
                if inspect.isawaitable(result):
                    await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            ClockLifecycleLogger.log_clock_error(self.owner, type(e).__name__, str(e))
            self._is_stopped = True
            raise

    @staticmethod
    def _current_task() -> Optional[asyncio.Task]:
        try:
            return asyncio.current_task()
        except RuntimeError:
            return None
