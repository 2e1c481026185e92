"""Delayed callbacks with a single-owner cancel handle.

``DelayedTask`` runs a coroutine function after a delay on the running event
loop. Once the callback has started, ``cancel()`` is a no-op, so a callback
that cancels its own handle (the batcher's timer flush) is never interrupted
mid-flight.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class DelayedTask:
    """Run ``callback`` once after ``delay_seconds`` unless cancelled first."""

    def __init__(
        self,
        delay_seconds: float,
        callback: Callable[[], Awaitable[object]],
        name: str | None = None,
    ) -> None:
        self._delay = delay_seconds
        self._callback = callback
        self._fired = False
        self._cancelled = False
        self._task: asyncio.Task[None] = asyncio.get_running_loop().create_task(
            self._run(), name=name
        )

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task.done()

    async def _run(self) -> None:
        await asyncio.sleep(self._delay)
        self._fired = True
        try:
            await self._callback()
        except Exception:
            # Nobody awaits this task; log instead of losing the traceback
            logger.exception(f"Delayed task {self._task.get_name()} failed")

    def cancel(self) -> bool:
        """Cancel the pending callback.

        Returns:
            True if the callback was prevented from running, False if it had
            already started or finished.
        """
        if self._fired or self._cancelled or self._task.done():
            return False
        self._cancelled = True
        self._task.cancel()
        return True

    async def wait(self) -> None:
        """Wait for the task to finish (fired or cancelled)."""
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._cancelled:
                raise
