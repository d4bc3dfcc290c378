# countdown.py — one-second countdown with one-shot threshold callbacks
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from fillstation.core.logger import APP_LOGGER

TICK_S = 1.0
FINAL_APPROACH_S = 5


class CountdownEngine:
    """
    Second-granularity countdown owned by a single fill session.

    - ``on_final_approach`` fires once when the value goes from above the
      threshold to exactly the threshold.
    - ``on_exhausted`` fires once when the value reaches 0; the engine then
      holds at 0 until ``reset``.
    Both flags are re-armed only by ``reset``.
    """

    def __init__(
        self,
        initial_s: int = 0,
        on_final_approach: Optional[Callable[[], None]] = None,
        on_exhausted: Optional[Callable[[], None]] = None,
        on_tick: Optional[Callable[[int], None]] = None,
        final_approach_s: int = FINAL_APPROACH_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._value = max(0, int(initial_s))
        self._final_approach_s = int(final_approach_s)
        self.on_final_approach = on_final_approach
        self.on_exhausted = on_exhausted
        self.on_tick = on_tick
        self._sleep = sleep
        self._fired_final = False
        self._fired_exhausted = False
        self._enabled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def value(self) -> int:
        return self._value

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def in_final_approach(self) -> bool:
        return self._value <= self._final_approach_s

    def reset(self, new_value: int) -> None:
        """Replace the value and re-arm both callbacks. Never fires on its own."""
        self._value = max(0, int(new_value))
        self._fired_final = False
        self._fired_exhausted = False

    def enable(self) -> None:
        # Only one tick schedule may exist per engine
        self._cancel_task()
        self._enabled = True
        self._task = asyncio.get_running_loop().create_task(self._run())

    def disable(self) -> None:
        """Suspend ticking; the current value is kept."""
        self._enabled = False
        self._cancel_task()

    def cancel(self) -> None:
        self.disable()

    def tick(self) -> None:
        if self._value <= 0:
            return
        self._value -= 1
        if self.on_tick is not None:
            self.on_tick(self._value)
        if self._value == self._final_approach_s and not self._fired_final:
            self._fired_final = True
            if self.on_final_approach is not None:
                self.on_final_approach()
        if self._value == 0 and not self._fired_exhausted:
            self._fired_exhausted = True
            if self.on_exhausted is not None:
                self.on_exhausted()

    def _cancel_task(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def _run(self) -> None:
        me = _current_task()
        while self._enabled and self._task is me:
            await self._sleep(TICK_S)
            if not self._enabled or self._task is not me:
                break
            try:
                self.tick()
            except Exception as e:
                APP_LOGGER.error(f"Countdown callback failed: {e}")


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
