import asyncio
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def monotonic_clock() -> float:
    return time.monotonic()


def _log_crash(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("Countdown ticker stopped by an error in its callback", exc_info=error)


class Countdown:
    """A fixed deadline measured against a monotonic clock."""

    def __init__(self, clock: Clock, deadline: float):
        self._clock = clock
        self.deadline = deadline

    @classmethod
    def starting_now(cls, clock: Clock, duration: float) -> "Countdown":
        return cls(clock, clock() + duration)

    def remaining(self) -> float:
        return max(0.0, self.deadline - self._clock())

    def reached(self) -> bool:
        return self._clock() >= self.deadline


class Ticker:
    """
    Calls ``callback`` every ``interval`` seconds on the running event loop
    until stopped. The callback runs inline on the loop, so it never overlaps
    with another step of the same session.
    """

    def __init__(self, callback: Callable[[], None], interval: float):
        self._callback = callback
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(_log_crash)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                self._callback()
        except asyncio.CancelledError:
            logger.debug("Countdown ticker stopped")
            raise
