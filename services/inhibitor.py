import os
from enum import Enum
from typing import Callable, Optional

from loguru import logger

LOGIND_NAME = "org.freedesktop.login1"
LOGIND_PATH = "/org/freedesktop/login1"
LOGIND_MANAGER = "org.freedesktop.login1.Manager"


class InhibitorState(Enum):
    FREE = "free"
    ACQUIRING = "acquiring"
    HELD = "held"


def get_login_manager(bus):
    """Proxy for the logind manager object; raises DBusException when unavailable."""
    return bus.get_object(LOGIND_NAME, LOGIND_PATH)


class InhibitorLock:
    """
    Holds a logind "handle-lid-switch" block inhibitor on request.

    The inhibitor is a file descriptor returned by Manager.Inhibit; the lock
    lasts until it is closed. The call is made asynchronously, and the most
    recent acquire()/release() wins once it completes.
    """

    WHAT = "handle-lid-switch"
    MODE = "block"

    def __init__(self, manager, state, who: str, why: str,
                 on_change: Optional[Callable[[], object]] = None):
        self.manager = manager
        self.state = state
        self.who = who
        self.why = why
        self.on_change = on_change
        self.status = InhibitorState.FREE
        self.wanted = False

    @property
    def held(self) -> bool:
        return self.status is InhibitorState.HELD

    def acquire(self):
        self.wanted = True
        if self.status is not InhibitorState.FREE:
            return

        logger.info("Requesting lid switch inhibitor")
        self.status = InhibitorState.ACQUIRING
        self.manager.Inhibit(
            self.WHAT, self.who, self.why, self.MODE,
            dbus_interface=LOGIND_MANAGER,
            reply_handler=self._on_reply,
            error_handler=self._on_error,
        )

    def release(self):
        self.wanted = False
        if self.status is InhibitorState.HELD:
            self._close()

    def close(self):
        """Drop the lock regardless of pending requests."""
        self.release()

    def _close(self):
        fd = self.state.inhibitor_handle
        self.state.inhibitor_handle = None
        self.status = InhibitorState.FREE
        if fd is not None:
            os.close(fd)
        logger.info("Released lid switch inhibitor")

    def _on_reply(self, handle):
        fd = handle.take()

        if not self.wanted:
            logger.info("Inhibitor no longer wanted, dropping it")
            self.status = InhibitorState.FREE
            os.close(fd)
            return

        self.state.inhibitor_handle = fd
        self.status = InhibitorState.HELD
        logger.info("Acquired lid switch inhibitor")

        if self.on_change is not None:
            self.on_change()

    def _on_error(self, error):
        self.status = InhibitorState.FREE
        logger.error(f"Failed to acquire lid switch inhibitor: {error}")
