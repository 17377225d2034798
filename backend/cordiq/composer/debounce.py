"""Trailing-edge debounce on the running asyncio loop."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Runs ``callback`` once ``delay`` seconds pass without a new trigger.

    Each ``trigger()`` cancels the pending timer and starts a new one, so a
    burst of triggers produces a single call after the last of them.
    Coroutine callbacks are started as tasks; ``cancel()`` stops a pending
    timer but leaves tasks that already started running.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None] | None],
        name: str = "debounce",
    ) -> None:
        self.delay = delay
        self.name = name
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        """True while a call is scheduled and has not fired yet."""
        return self._handle is not None

    @property
    def in_flight(self) -> bool:
        return bool(self._tasks)

    def trigger(self) -> None:
        """(Re)arm the timer. Must be called from inside the event loop."""
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        outcome = self._callback()
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Debounced %s task failed", self.name, exc_info=task.exception())

    async def wait_idle(self) -> None:
        """Wait for callbacks that have already started to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
