"""Recurring tick scheduling and generation tokens."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from pysafeloc.policy import is_current

_logger = logging.getLogger(__name__)


class Generation:
    """Monotonic token distinguishing current work from superseded work."""

    def __init__(self) -> None:
        self._value = 0

    @property
    def current(self) -> int:
        return self._value

    def advance(self) -> int:
        self._value += 1
        return self._value

    def is_current(self, token: int) -> bool:
        return is_current(token, self._value)


class RecurringTicker:
    """Call *callback* immediately and then after every delay.

    The callback must not block: it is expected to spawn its own work.
    Exceptions raised by a tick are logged and never stop the timer.
    ``delay`` is re-evaluated before every sleep so backoff can change the
    cadence without rescheduling.
    """

    def __init__(self, callback: Callable[[], None], delay: Callable[[], float], *, name: str = "pysafeloc-ticker") -> None:
        self._callback = callback
        self._delay = delay
        self._name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, *, immediate: bool = True) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(immediate), name=self._name)

    def cancel(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    def _fire(self) -> None:
        try:
            self._callback()
        except Exception:
            _logger.warning("Scheduled tick failed", exc_info=True)

    async def _run(self, immediate: bool) -> None:
        if immediate:
            self._fire()
        while True:
            await asyncio.sleep(self._delay())
            self._fire()
