"""
Cancellation tokens for superseded evaluations.

The scheduler hands a token to every evaluation it starts. Re-arming the
debounce timer for the same cell cancels the token, and both the rule loop
and any awaited async validator notice it and stop.
"""

import asyncio
import inspect
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, List, Optional

from .errors import ValidationCancelled


class CancellationToken:
    """Thread-safe, one-way cancellation flag.

    Callbacks registered with :meth:`add_callback` run once, on the thread
    that calls :meth:`cancel`.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, or right away if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ValidationCancelled("evaluation superseded by a newer edit")

    def __repr__(self) -> str:
        state = 'cancelled' if self.cancelled else 'active'
        return f"<CancellationToken {state}>"


async def wait_cancellable(
    awaitable: Awaitable[Any],
    token: Optional[CancellationToken] = None,
) -> Any:
    """Await ``awaitable``, abandoning it as soon as ``token`` is cancelled.

    Cancelling the token cancels the wrapping task through the owning loop,
    so nothing polls while the validator runs.

    Raises:
        ValidationCancelled: If the token fires before the awaitable finishes.
    """
    if token is None:
        return await awaitable

    if token.cancelled:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        token.raise_if_cancelled()

    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(awaitable)

    def on_cancel() -> None:
        try:
            loop.call_soon_threadsafe(task.cancel)
        except RuntimeError:
            # Loop already closed: the awaitable finished before the token fired
            return

    token.add_callback(on_cancel)
    try:
        result = await task
    except asyncio.CancelledError:
        if token.cancelled:
            raise ValidationCancelled("async validator abandoned by a newer edit") from None
        raise
    finally:
        token.remove_callback(on_cancel)
    token.raise_if_cancelled()
    return result


def _in_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def run_awaitable(
    awaitable: Awaitable[Any],
    token: Optional[CancellationToken] = None,
) -> Any:
    """Drive ``awaitable`` to completion from synchronous code.

    Scheduler and batch worker threads have no running loop, so a private
    one is used. When the caller's thread already runs a loop (a notebook,
    say) the awaitable is driven on a short-lived helper thread instead.
    Coroutine callers should use the ``*_async`` evaluation methods.
    """
    if not inspect.isawaitable(awaitable):
        return awaitable
    if not _in_running_loop():
        return asyncio.run(wait_cancellable(awaitable, token))
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix='gridquality-await') as helper:
        return helper.submit(asyncio.run, wait_cancellable(awaitable, token)).result()
