#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
Pause-aware timing and task bookkeeping for a running script.

RunGate is shared by every task of one run. Statements call checkpoint()
between steps; delays and waits go through timed()/sleep() so that time spent
paused is not charged against their budget. TaskSet tracks the asyncio tasks
of a run so stop() can cancel all of them at once.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class RunGate:
    def __init__(self):
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._paused = asyncio.Event()
        self._closed = False

    def pause(self) -> None:
        if self._closed:
            return
        self._resumed.clear()
        self._paused.set()

    def resume(self) -> None:
        self._paused.clear()
        self._resumed.set()

    def close(self) -> None:
        """Release every waiter; later checkpoints cancel their task."""
        self._closed = True
        self._paused.clear()
        self._resumed.set()

    async def _hold(self) -> None:
        await self._resumed.wait()
        if self._closed:
            raise asyncio.CancelledError()

    async def checkpoint(self) -> None:
        """Yield to the loop, then block while paused."""
        await asyncio.sleep(0)
        await self._hold()

    async def timed(
        self, factory: Callable[[], Awaitable], seconds: float
    ) -> Tuple[object, float]:
        """Await factory() with a budget of running (unpaused) time.

        Returns (result, remaining seconds). Raises asyncio.TimeoutError once
        the budget is used up. A result that arrives while paused is handed
        back only after resume.
        """
        loop = asyncio.get_running_loop()
        remaining = max(0.0, seconds)
        work = asyncio.ensure_future(factory())
        try:
            while True:
                await self._hold()
                if work.done():
                    return work.result(), max(0.0, remaining)
                started = loop.time()
                interrupt = asyncio.ensure_future(self._paused.wait())
                try:
                    done, _ = await asyncio.wait(
                        {work, interrupt},
                        timeout=remaining,
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    interrupt.cancel()
                remaining = max(0.0, remaining - (loop.time() - started))
                if not done:
                    raise asyncio.TimeoutError()
        finally:
            if not work.done():
                work.cancel()

    async def sleep(self, seconds: float) -> None:
        """Sleep for `seconds` of running time."""
        loop = asyncio.get_running_loop()
        try:
            await self.timed(loop.create_future, seconds)
        except asyncio.TimeoutError:
            pass


class TaskSet:
    """Registry of the live tasks of one run."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        # Drop the reference as soon as the task completes
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_all(self, keep: Optional[asyncio.Task] = None) -> int:
        """Cancel every tracked task except `keep`; returns how many were cancelled."""
        count = 0
        for task in list(self._tasks):
            if task is keep or task.done():
                continue
            task.cancel()
            count += 1
        self._tasks.clear()
        if keep is not None and not keep.done():
            self._tasks.add(keep)
        if count:
            logger.debug("cancelled %d task(s)", count)
        return count
