"""
FIFO of pending XCB events, drained from the connection on readiness.
"""

from collections import deque
from typing import Any, Callable

from loguru import logger


class EventQueue:
    """
    Buffers events read from an xcffib connection.

    The connection is only ever read without blocking: everything the
    library has already buffered is drained into the queue in one go, and
    events are handed out one per dispatch. Once the connection reports a
    fatal error the queue is marked broken; the remaining events are still
    delivered, after which dispatch asks to be unregistered.
    """

    def __init__(self, connection):
        self.connection = connection
        self.broken = False
        self._events: deque = deque()

    def __len__(self) -> int:
        return len(self._events)

    def prepare(self) -> bool:
        """Flush outgoing requests and report whether events are pending."""
        if not self.broken:
            self.connection.flush()
        return bool(self._events) or self.broken

    def _connection_error(self) -> int:
        try:
            return self.connection.has_error()
        except Exception:
            return -1

    def _drain(self) -> bool:
        if self.broken:
            return True

        try:
            status = self.connection.has_error()
            if status:
                raise ConnectionError(f"xcb connection error: {status}")
            while True:
                event = self.connection.poll_for_event()
                if event is None:
                    break
                self._events.append(event)
        except Exception as e:
            if self._connection_error():
                logger.error(f"X connection lost: {e}")
                self.broken = True
            else:
                # Report ready anyway; one bad read must not stall the loop.
                logger.error(f"Error draining X connection: {e}")
            return True

        return bool(self._events)

    def check(self, readable: bool) -> bool:
        """Drain buffered events if the descriptor is readable."""
        if readable:
            return self._drain()
        return bool(self._events) or self.broken

    def dispatch(self, callback: Callable[[Any], bool]) -> bool:
        """Pop one event and hand it to callback."""
        if not self._events:
            # Reached after a failed drain reported ready.
            return not self.broken

        event = self._events.popleft()
        keep = callback(event)
        del event

        # Round-trips made by the callback can leave events buffered in the
        # library without the socket becoming readable again.
        self._drain()
        return keep

    def finalize(self):
        """Drop anything still queued."""
        self._events.clear()
