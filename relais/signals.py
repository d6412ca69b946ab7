#!/usr/bin/env python3

# standards
import asyncio
from typing import Awaitable, Callable, List, Optional, TypeVar

# relais
from .datastructures import RequestAborted


T = TypeVar('T')

AbortListener = Callable[[], None]


class AbortSignal:
    """
    A single cancellation source shared by everything involved in one request or stream: interceptors, the timeout timer, the
    transport call, a streamed body reader. Aborting is idempotent, listeners are called once, synchronously, in the order in which
    they were added.
    """

    def __init__(self) -> None:
        self.aborted = False
        self.reason: Optional[str] = None
        self._listeners: List[AbortListener] = []
        self._event: Optional[asyncio.Event] = None

    def abort(self, reason: str = 'aborted') -> None:
        if self.aborted:
            return
        self.aborted = True
        self.reason = reason
        if self._event is not None:
            self._event.set()
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener()

    def add_listener(self, listener: AbortListener) -> None:
        if self.aborted:
            listener()
        else:
            self._listeners.append(listener)

    def remove_listener(self, listener: AbortListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def raise_if_aborted(self) -> None:
        if self.aborted:
            raise RequestAborted(self.reason)

    async def wait(self) -> None:
        if self._event is None:
            # created lazily, so that the signal can be instantiated outside of a running event loop
            self._event = asyncio.Event()
            if self.aborted:
                self._event.set()
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable`, unless the signal fires first, in which case `awaitable` is cancelled and `RequestAborted` is raised.
        """
        if self.aborted:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RequestAborted(self.reason)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task.done():
            return task.result()
        task.cancel()
        raise RequestAborted(self.reason)
