# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Cooperative scheduling primitives for the watcher.

StopFlag     — shared "please stop" signal with an interruptible sleep
RepeatingTask — run an async callable every N seconds until stopped

Every loop in the watcher sleeps through StopFlag.sleep(), so setting the
flag wakes all of them at once and no timer outlives its owner.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("runalert.scheduler")


class StopFlag:
    """asyncio.Event with a sleep that returns early when the flag is set."""

    def __init__(self):
        self._event = asyncio.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to `seconds`. Returns True if stopped meanwhile."""
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(0.0, seconds))
        except asyncio.TimeoutError:
            return False
        return True


class RepeatingTask:
    """
    Runs `fn` every `interval` seconds on the current event loop.

    Exceptions from `fn` are logged and the schedule continues.
    """

    def __init__(
        self,
        name: str,
        fn: Callable[[], Awaitable[None]],
        interval: float,
        stop: Optional[StopFlag] = None,
        run_immediately: bool = True,
    ):
        self.name = name
        self._fn = fn
        self._interval = interval
        self._stop = stop if stop is not None else StopFlag()
        self._run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self._loop(), name=self.name)
        return self._task

    def stop(self) -> None:
        self._stop.set()

    async def join(self) -> None:
        if self._task is not None:
            await self._task

    async def _loop(self) -> None:
        logger.debug("%s: every %ss", self.name, self._interval)
        if not self._run_immediately and await self._stop.sleep(self._interval):
            return
        while not self._stop.is_set():
            try:
                await self._fn()
            except Exception as e:
                logger.exception("%s failed: %s", self.name, e)
            self.runs += 1
            if await self._stop.sleep(self._interval):
                break
        logger.debug("%s: stopped after %d runs", self.name, self.runs)
