# core/task_registry.py
"""
Registry of outstanding timers, background tasks and cancellable requests.

Everything the identity subsystem schedules on the event loop goes through
one TaskRegistry so that closing the window can terminate all of it
synchronously via cancel_all().
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from core.errors import RequestAborted, RequestTimeout

logger = logging.getLogger(__name__)


class TaskRegistry:
    """
    Tracks timer handles and tasks created on a single event loop.

    cancel_all() also closes the registry: later timers, sleeps and requests
    raise RequestAborted and spawn() drops the coroutine.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._timers: Set[asyncio.TimerHandle] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._waiters: Set[asyncio.Future] = set()
        self._closed = False

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def _ensure_open(self):
        if self._closed:
            raise RequestAborted("Registry is closed")

    def call_later(self, delay: float, callback: Callable[..., Any], *args) -> asyncio.TimerHandle:
        """Schedule callback after delay seconds; the handle deregisters itself when it fires"""
        self._ensure_open()
        handle = None

        def _fire():
            self._timers.discard(handle)
            callback(*args)

        handle = self.loop.call_later(delay, _fire)
        self._timers.add(handle)
        return handle

    def cancel_timer(self, handle: Optional[asyncio.TimerHandle]):
        if handle is None:
            return
        handle.cancel()
        self._timers.discard(handle)

    async def sleep(self, delay: float):
        """
        asyncio.sleep backed by a registered timer.

        Raises:
            RequestAborted: cancel_all() ran before the timer fired
        """
        self._ensure_open()
        waiter = self.loop.create_future()

        def _wake():
            if not waiter.done():
                waiter.set_result(None)

        handle = self.call_later(delay, _wake)
        self._waiters.add(waiter)
        try:
            await waiter
        finally:
            self._waiters.discard(waiter)
            self.cancel_timer(handle)

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> Optional[asyncio.Task]:
        """
        Run coro as a tracked background task.

        Errors raised by the task are logged and dropped, background work
        never reports to the UI. Returns None once the registry is closed.
        """
        if self._closed:
            logger.debug(f"Registry closed, dropping {name or coro!r}")
            _discard(coro)
            return None

        task = self.loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug(f"Background task {task.get_name()} failed: {exc!r}")

    async def fetch(self, coro: Awaitable, timeout: float):
        """
        Await coro as a cancellable request with a hard timeout.

        Raises:
            RequestTimeout: the timer fired before the request finished
            RequestAborted: the request was cancelled by cancel_all(), or the
                registry was already closed
        """
        if self._closed:
            _discard(coro)
            raise RequestAborted("Registry is closed")

        task = self.loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        expired = False

        def _expire():
            nonlocal expired
            expired = True
            task.cancel()

        handle = self.call_later(timeout, _expire)
        try:
            await asyncio.wait({task})
        finally:
            self.cancel_timer(handle)
            if not task.done():
                task.cancel()

        if task.cancelled():
            if expired:
                raise RequestTimeout(f"Request timed out after {timeout:g}s")
            raise RequestAborted("Request aborted")
        return task.result()

    def cancel_all(self) -> int:
        """
        Cancel every pending timer and task and close the registry.
        Returns how many were cancelled.
        """
        self._closed = True
        count = len(self._timers) + len(self._tasks)

        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()

        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        # sleeps awaited outside a tracked task; the ones inside were cancelled above
        for waiter in list(self._waiters):
            if not waiter.done():
                waiter.set_exception(RequestAborted("Sleep aborted"))
        self._waiters.clear()

        if count:
            logger.info(f"🧹 Cancelled {count} pending timers/requests")
        return count


def _discard(coro):
    if asyncio.iscoroutine(coro):
        coro.close()
