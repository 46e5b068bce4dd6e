"""Cancellable once-per-interval countdowns backed by asyncio tasks."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TickHandler = Callable[[int], Awaitable[None]]
ExpireHandler = Callable[[], Awaitable[None]]


class Countdown:
    """Counts ``seconds`` down to zero, calling ``on_tick`` after each step.

    ``cancel()`` is safe from any callback, including this countdown's own
    handlers: a cancelled run never ticks or expires again.
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        seconds: int,
        on_tick: TickHandler,
        on_expire: ExpireHandler,
        *,
        interval: float = 1.0,
        name: str = "countdown",
    ) -> None:
        self.seconds = seconds
        self.interval = interval
        self.name = name
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._remaining = seconds
        self._task: Optional[asyncio.Task] = None
        self._run_id = 0

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, seconds: Optional[int] = None) -> None:
        self.cancel()
        self._remaining = self.seconds if seconds is None else seconds
        self._run_id = next(self._ids)
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._run_id), name=f"{self.name}-{self._run_id}"
        )

    reset = start

    def cancel(self) -> None:
        task, self._task = self._task, None
        self._run_id = 0
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _run(self, run_id: int) -> None:
        while self._remaining > 0:
            await asyncio.sleep(self.interval)
            if run_id != self._run_id:
                return
            self._remaining -= 1
            await self._on_tick(self._remaining)
            if run_id != self._run_id:
                return
        logger.debug("[timer-expire] name=%s", self.name)
        await self._on_expire()
