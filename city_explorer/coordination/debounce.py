"""Quiescence-window debouncing for rapidly changing input."""

import asyncio
from typing import Awaitable, Callable

from city_explorer.logging_config import logger


class Debouncer:
    """Emit the latest value once input has been quiet for ``delay_s`` seconds.

    Each ``push`` cancels the pending timer and starts a new one. Once a
    timer fires, the emission runs to completion even if newer values
    arrive; only the waiting period is cancellable.
    """

    def __init__(self, delay_s: float, emit: Callable[[str], Awaitable[None]]):
        self.delay_s = delay_s
        self._emit = emit
        self._timer: asyncio.Task | None = None
        self._emissions: set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def push(self, value: str):
        """Restart the quiescence window with a new value."""
        if self._closed:
            logger.warning("DEBOUNCE_PUSH_AFTER_CLOSE")
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._wait_then_emit(value))

    async def _wait_then_emit(self, value: str):
        await asyncio.sleep(self.delay_s)
        self._timer = None
        emission = asyncio.get_running_loop().create_task(self._emit(value))
        self._emissions.add(emission)
        emission.add_done_callback(self._emission_done)

    def _emission_done(self, emission: asyncio.Task):
        self._emissions.discard(emission)
        if not emission.cancelled() and emission.exception() is not None:
            logger.error("DEBOUNCE_EMIT_FAILED", error=repr(emission.exception()))

    async def join(self):
        """Wait for the pending timer and any emission it started."""
        while self.pending or self._emissions:
            waiting = set(self._emissions)
            if self.pending:
                waiting.add(self._timer)
            await asyncio.wait(waiting)

    def close(self):
        """Cancel any pending timer; nothing is emitted afterwards."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
