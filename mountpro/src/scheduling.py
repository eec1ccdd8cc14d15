"""
Cancellable timer and fetch-epoch primitives for the asyncio event loop.

`CancellableTimer` debounces bursts of events: every `schedule()` call
replaces the pending callback, so only the last one survives the delay.

`FetchEpoch` hands out `FetchToken`s. Issuing a new token cancels the
previous one; a cancelled token's results must be discarded even if they
arrive later.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class CancellableTimer:
    """Restartable one-shot timer that runs a coroutine function after `delay` seconds."""

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]]):
        self.delay = delay
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self) -> None:
        """(Re)start the timer, dropping any pending firing."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        """Drop the pending firing. Safe to call when nothing is pending."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        # forget the task first so a schedule() made by the callback
        # does not cancel the callback itself
        self._task = None
        await self._callback()


class FetchToken:
    """Cancellation token for one provider request."""

    def __init__(self, epoch: int):
        self.epoch = epoch
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError(f"fetch epoch {self.epoch} superseded")

    def __repr__(self):
        return f"FetchToken(epoch={self.epoch}, cancelled={self._cancelled})"


class FetchEpoch:
    """Issues tokens so that only the most recent request is honoured."""

    def __init__(self):
        self._counter = 0
        self._current: Optional[FetchToken] = None

    @property
    def current(self) -> Optional[FetchToken]:
        return self._current

    def issue(self) -> FetchToken:
        """Cancel the outstanding token (if any) and return a fresh one."""
        self.cancel()
        self._counter += 1
        self._current = FetchToken(self._counter)
        return self._current

    def is_current(self, token: FetchToken) -> bool:
        return token is self._current and not token.cancelled

    def cancel(self) -> None:
        """Cancel the outstanding token. No-op if it already settled."""
        if self._current is not None:
            self._current.cancel()

    def settle(self, token: FetchToken) -> None:
        """Forget the token once its request settled, if it is still current."""
        if token is self._current:
            self._current = None
