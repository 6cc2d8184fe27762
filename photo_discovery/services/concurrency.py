"""
Cooperative scheduling primitives
Debounce timer, last-request-wins tokens and a between-batches cancellation flag.
All of them assume a single asyncio event loop.
"""
import asyncio
import inspect
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

Callback = Callable[[T], Union[Awaitable[Any], Any]]


async def call_maybe_async(callback: Callable[..., Any], *args, **kwargs) -> Any:
    """Invoke a sync or async callback and return its result"""
    result = callback(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


class Debouncer(Generic[T]):
    """
    Collapses rapid calls into one delayed invocation with the latest value

    Each call() restarts the timer; when the delay elapses without another
    call, the callback runs once with the most recent value. Earlier values
    in the same window are dropped, never executed.
    """

    def __init__(self, callback: Callback, delay_seconds: float):
        self.callback = callback
        self.delay_seconds = delay_seconds
        self._task: Optional[asyncio.Task] = None
        self._value: Optional[T] = None
        self.superseded = 0
        self.fired = 0
        self.failed = 0

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def call(self, value: T):
        """Schedule the callback; must be called from inside the running loop"""
        loop = asyncio.get_running_loop()
        if self.pending:
            self._task.cancel()
            self.superseded += 1
            logger.debug(f"Debounced call superseded ({self.superseded} so far)")
        self._value = value
        self._task = loop.create_task(self._run())

    async def _run(self):
        await asyncio.sleep(self.delay_seconds)
        value, self._value = self._value, None
        self._task = None
        # Timer tasks are never awaited; failures stop here
        try:
            await self._fire(value)
        except Exception as e:
            self.failed += 1
            logger.error(f"Debounced callback failed: {e}", exc_info=True)

    async def _fire(self, value: T):
        self.fired += 1
        await call_maybe_async(self.callback, value)

    def cancel(self) -> bool:
        """Drop the pending invocation; returns True if one was pending"""
        if not self.pending:
            return False
        self._task.cancel()
        self._task = None
        self._value = None
        return True

    async def flush(self) -> bool:
        """
        Run the pending invocation now instead of waiting for the timer

        Unlike a timer-driven run, a failing callback raises to the caller.
        """
        if not self.pending:
            return False
        value = self._value
        self.cancel()
        await self._fire(value)
        return True

    async def wait(self):
        """Wait until the pending invocation (if any) has run"""
        # A superseded timer is replaced by a newer one; keep waiting on that
        while self._task is not None:
            await asyncio.wait({self._task})


class RequestTokens:
    """Monotonically increasing request tokens; only the newest is current"""

    def __init__(self):
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest


class CancellationToken:
    """Caller-issued cancellation flag, checked between batches only"""

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: Optional[str] = None):
        self._cancelled = True
        self.reason = reason
