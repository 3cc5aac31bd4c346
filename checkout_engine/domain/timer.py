"""Countdown against the shared checkout deadline."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)

ALMOST_EXPIRED_SECONDS = 120


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CancellationToken:
    """
    Handed to every async checkout step. Reset or expiry cancels it so that
    a result arriving afterwards can be recognised as stale.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    def cancel(self, reason: str) -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ExpiryTimer:
    """
    Recomputes minutes/seconds left from the deadline on every tick and
    fires on_expire exactly once when the deadline is reached.
    """

    def __init__(
        self,
        deadline: datetime,
        on_expire: Callable[[], None],
        clock: Callable[[], datetime] = utc_now,
        almost_expired_seconds: int = ALMOST_EXPIRED_SECONDS,
    ):
        self.deadline = deadline
        self._on_expire = on_expire
        self._clock = clock
        self._almost_expired_seconds = almost_expired_seconds

        self.minutes = 0
        self.seconds = 0
        self.is_almost_expired = False
        self._fired = False
        self._stopped = False
        self._task: asyncio.Task | None = None

    @property
    def remaining_seconds(self) -> float:
        return max(0.0, (self.deadline - self._clock()).total_seconds())

    @property
    def expired(self) -> bool:
        return self._fired

    @property
    def running(self) -> bool:
        return not self._stopped and not self._fired

    def tick(self) -> bool:
        """
        Returns True while the countdown is still live.
        """
        if not self.running:
            return False

        remaining = self.remaining_seconds
        if remaining <= 0:
            self.minutes = 0
            self.seconds = 0
            self._fired = True
            logger.info("Checkout deadline %s reached", self.deadline.isoformat())
            self._on_expire()
            return False

        whole = int(remaining)
        self.minutes = (whole // 60) % 60
        self.seconds = whole % 60
        self.is_almost_expired = remaining < self._almost_expired_seconds
        return True

    async def run(self, interval: float = 1.0) -> None:
        while self.tick():
            await asyncio.sleep(interval)

    def start(self, interval: float = 1.0) -> asyncio.Task:
        self._task = asyncio.get_running_loop().create_task(self.run(interval))
        return self._task

    def stop(self) -> None:
        self._stopped = True
        # after firing, the run loop exits on its own
        if self._task is not None and not self._task.done() and not self._fired:
            self._task.cancel()
        self._task = None
