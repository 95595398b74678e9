"""Timer schedulers for the sync engine.

``LoopScheduler`` runs on the asyncio event loop. ``ManualScheduler`` keeps a
virtual clock that tests move forward with ``advance()``, so debounce and probe
timing is exercised without waiting on the wall clock.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from typing import Callable, List, Optional, Set

logger = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self):
        self.cancelled = False
        self._handle: Optional[asyncio.TimerHandle] = None

    def cancel(self):
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()


class LoopScheduler:
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._tasks: Set = set()

    def bind(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def _in_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self.loop
        except RuntimeError:
            return False

    def now(self) -> float:
        return self.loop.time()

    def call_soon(self, callback: Callable[[], None]):
        """Run callback on the loop; inline when already on it (state changes can come from worker threads)."""
        if self._in_loop_thread():
            callback()
        else:
            self.loop.call_soon_threadsafe(callback)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle()
        handle._handle = self.loop.call_later(delay, callback)
        return handle

    def spawn(self, coro):
        """Start coro on the loop and hold a reference until it finishes."""
        if self._in_loop_thread():
            task = self.loop.create_task(coro)
        else:
            task = asyncio.run_coroutine_threadsafe(coro, self.loop)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background sync task failed: {error!r}", exc_info=error)

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)


class ManualScheduler:
    def __init__(self):
        self._now = 0.0
        self._seq = itertools.count()
        self._timers: List[tuple] = []
        self._tasks: List[asyncio.Future] = []

    def bind(self, loop):
        pass

    def now(self) -> float:
        return self._now

    def call_soon(self, callback: Callable[[], None]):
        callback()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle()
        heapq.heappush(self._timers, (self._now + delay, next(self._seq), callback, handle))
        return handle

    def spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.append(task)
        return task

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, _, h in self._timers if not h.cancelled)

    async def advance(self, seconds: float):
        """Move virtual time forward, fire every due timer and wait for the work they spawned."""
        target = self._now + seconds
        while self._timers and self._timers[0][0] <= target:
            due, _, callback, handle = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            self._now = due
            callback()
            await self.drain()
        self._now = target
        await self.drain()

    async def drain(self):
        while self._tasks:
            await self._tasks.pop(0)
