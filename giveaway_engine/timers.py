from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

log = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerRegistry:
    """At most one pending end-of-signup task per giveaway id."""

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}
        self._delays: Dict[str, float] = {}

    def arm(self, giveaway_id: str, delay: float, callback: TimerCallback) -> asyncio.Task:
        """Schedule ``callback`` after ``delay`` seconds, replacing any existing timer."""
        self.cancel(giveaway_id)
        delay = max(delay, 0.0)

        async def waiter() -> None:
            try:
                if delay > 0:
                    await asyncio.sleep(delay)
                await callback()
            except asyncio.CancelledError:
                log.debug("Timer for giveaway %s cancelled", giveaway_id)
                raise
            except Exception:
                log.exception("Timer callback for giveaway %s failed", giveaway_id)
            finally:
                if self._tasks.get(giveaway_id) is task:
                    self._tasks.pop(giveaway_id, None)
                    self._delays.pop(giveaway_id, None)

        task = asyncio.create_task(waiter(), name=f"giveaway-timer:{giveaway_id}")
        self._tasks[giveaway_id] = task
        self._delays[giveaway_id] = delay
        log.debug("Armed timer for giveaway %s in %.1fs", giveaway_id, delay)
        return task

    def cancel(self, giveaway_id: str) -> bool:
        task = self._tasks.pop(giveaway_id, None)
        self._delays.pop(giveaway_id, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    def cancel_all(self) -> None:
        for giveaway_id in list(self._tasks):
            self.cancel(giveaway_id)

    def is_armed(self, giveaway_id: str) -> bool:
        return giveaway_id in self._tasks

    def delay_of(self, giveaway_id: str) -> Optional[float]:
        return self._delays.get(giveaway_id)

    def __len__(self) -> int:
        return len(self._tasks)
