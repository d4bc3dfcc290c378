# poller.py — reconciliation poller with countdown-driven cadence
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fillstation.core.logger import APP_LOGGER

NORMAL_S = 30.0
LAST_30_S = 5.0
LAST_5_S = 1.0
POST_COMPLETION_S = 2.0
LAST_30_THRESHOLD = 30
LAST_5_THRESHOLD = 5


@dataclass(frozen=True)
class PollIntervals:
    normal: float = NORMAL_S
    last_30_seconds: float = LAST_30_S
    last_5_seconds: float = LAST_5_S
    post_completion: float = POST_COMPLETION_S


def polling_interval_s(remaining_s: Optional[int], completed: bool, intervals: PollIntervals = PollIntervals()) -> float:
    """Cadence for the next interval. ``remaining_s`` is None with no session running."""
    if completed:
        return intervals.post_completion
    if remaining_s is None:
        return intervals.normal
    if remaining_s <= LAST_5_THRESHOLD:
        return intervals.last_5_seconds
    if remaining_s <= LAST_30_THRESHOLD:
        return intervals.last_30_seconds
    return intervals.normal


class AdaptivePoller:
    """
    Periodically awaits ``reconcile`` against the remote authority.

    ``status`` returns ``(remaining_s, completed)`` for the local session and
    is read once at the start of every interval, so a cadence change only
    applies from the next scheduled poll.
    """

    def __init__(
        self,
        reconcile: Callable[[], Awaitable[None]],
        status: Callable[[], tuple[Optional[int], bool]],
        intervals: PollIntervals = PollIntervals(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._reconcile = reconcile
        self._status = status
        self.intervals = intervals
        self._sleep = sleep
        self._enabled = False
        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self.polls = 0
        self.last_interval_s: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    def next_interval_s(self) -> float:
        remaining, completed = self._status()
        return polling_interval_s(remaining, completed, self.intervals)

    def start(self) -> None:
        self.stop()
        self._enabled = True
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Cancel the schedule. An in-flight reconciliation is left to finish."""
        self._enabled = False
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def poll_now(self) -> None:
        """Reconcile immediately, joining a reconciliation already in flight."""
        inflight = self._inflight
        if inflight is None or inflight.done():
            inflight = asyncio.get_running_loop().create_task(self._reconcile_once())
            self._inflight = inflight
        await asyncio.shield(inflight)

    async def _reconcile_once(self) -> None:
        self.polls += 1
        try:
            await self._reconcile()
        except Exception as e:
            APP_LOGGER.warning(f"Reconciliation poll failed: {e}")

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._enabled and self._task is me:
            interval = self.next_interval_s()
            self.last_interval_s = interval
            await self._sleep(interval)
            if not self._enabled or self._task is not me:
                break
            await self.poll_now()
