"""
Multicast stream of classified errors
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Union

from .models import ErrorRecord

logger = logging.getLogger(__name__)

ErrorListener = Callable[[ErrorRecord], Union[None, Awaitable[None]]]

DEFAULT_MAX_PENDING = 1000

_CLOSED = object()


class ErrorSubscription:
    """
    Async iterator over errors published after the subscription was made.

    At most ``max_pending`` unconsumed errors are buffered; beyond that the
    oldest one is dropped and counted in ``dropped``.
    """

    def __init__(self, stream: "ErrorEventStream", max_pending: int = DEFAULT_MAX_PENDING):
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self._stream = stream
        self._queue: asyncio.Queue = asyncio.Queue()
        self._done = False
        self.max_pending = max_pending
        self.dropped = 0

    def _push(self, item: Any) -> None:
        if item is not _CLOSED and self._queue.qsize() >= self.max_pending:
            oldest = self._queue.get_nowait()
            self.dropped += 1
            logger.warning(f"Error subscription buffer full, dropped {oldest.id}")
        self._queue.put_nowait(item)

    def __aiter__(self) -> "ErrorSubscription":
        return self

    async def __anext__(self) -> ErrorRecord:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._done = True
            raise StopAsyncIteration
        return item

    def pending(self) -> int:
        """Number of buffered events not yet consumed"""
        return self._queue.qsize()

    def close(self) -> None:
        """Stop receiving events; iteration ends once the buffer drains"""
        if self._stream.unsubscribe(self):
            self._push(_CLOSED)


class ErrorEventStream:
    """
    Fan-out of ErrorRecords to any number of observers.

    Observers either iterate a subscription or register a listener callback
    (sync or async). A failing listener is logged and never affects the
    publisher or other observers.
    """

    def __init__(self):
        self._subscriptions: List[ErrorSubscription] = []
        self._listeners: List[ErrorListener] = []
        self.is_closed = False

    def subscribe(self, max_pending: int = DEFAULT_MAX_PENDING) -> ErrorSubscription:
        """New subscriber; iterate it to drain, or close() it when done"""
        subscription = ErrorSubscription(self, max_pending=max_pending)
        if self.is_closed:
            subscription._push(_CLOSED)
        else:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: ErrorSubscription) -> bool:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            return True
        return False

    def add_listener(self, listener: ErrorListener) -> None:
        if not self.is_closed:
            self._listeners.append(listener)

    def remove_listener(self, listener: ErrorListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def observer_count(self) -> int:
        return len(self._subscriptions) + len(self._listeners)

    async def publish(self, record: ErrorRecord) -> None:
        if self.is_closed:
            logger.debug(f"Dropping error {record.id}: event stream is closed")
            return

        for subscription in list(self._subscriptions):
            subscription._push(record)

        for listener in list(self._listeners):
            try:
                result = listener(record)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error listener failed for {record.id}: {e}")

    def close(self) -> None:
        """End every subscription and drop listeners; further publishes are ignored"""
        if self.is_closed:
            return
        self.is_closed = True
        for subscription in self._subscriptions:
            subscription._push(_CLOSED)
        self._subscriptions.clear()
        self._listeners.clear()
