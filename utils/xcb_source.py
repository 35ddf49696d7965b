"""
GLib main loop source for an xcffib connection.
"""

from typing import Any, Callable, Optional

import gi
gi.require_version("GLib", "2.0")
from gi.repository import GLib

from utils.event_queue import EventQueue


class XcbSource(GLib.Source):
    """
    Dispatches X events to a callback from the GLib main loop.

    The connection's socket is polled alongside every other source. When it
    becomes readable all buffered events are pulled off the connection, and
    the callback then receives them one per loop iteration in arrival order.
    The callback returns GLib.SOURCE_CONTINUE to stay registered. If the
    connection dies the source removes itself after delivering what was
    already queued, and on_lost is called.
    """

    def __init__(self, connection, callback: Callable[..., bool], *args: Any,
                 on_lost: Optional[Callable[[], None]] = None):
        super().__init__()
        if callback is None or not callable(callback):
            raise ValueError("XcbSource requires an event callback")

        self._callback = callback
        self._args = args
        self._on_lost = on_lost
        self._queue = EventQueue(connection)
        self._fd_tag = self.add_unix_fd(connection.get_file_descriptor(), GLib.IOCondition.IN)
        self.set_name("xcb-events")
        # Replies read before attach may have buffered events the socket won't signal again.
        self._queue.check(True)

    def prepare(self):
        return (self._queue.prepare(), -1)

    def check(self):
        revents = self.query_unix_fd(self._fd_tag)
        return self._queue.check(bool(revents & GLib.IOCondition.IN))

    def dispatch(self, callback, args):
        keep = self._queue.dispatch(lambda event: self._callback(event, *self._args))
        if self._queue.broken and not self._queue:
            if self._on_lost is not None:
                self._on_lost()
            return GLib.SOURCE_REMOVE
        return keep

    def finalize(self):
        self._queue.finalize()

    @property
    def pending(self) -> int:
        return len(self._queue)
