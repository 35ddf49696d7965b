import os

import pytest

from services.inhibitor import LOGIND_MANAGER, InhibitorLock, InhibitorState
from services.reconciler import OutputEvent, OutputNames, Reconciler, SystemState


class FakeUnixFd:
    def __init__(self, fd):
        self.fd = fd

    def take(self):
        return self.fd


class FakeManager:
    def __init__(self):
        self.requests = []

    def Inhibit(self, what, who, why, mode, dbus_interface, reply_handler, error_handler):
        self.requests.append({
            "args": (what, who, why, mode),
            "interface": dbus_interface,
            "reply": reply_handler,
            "error": error_handler,
        })


def fd_is_open(fd):
    try:
        os.fstat(fd)
    except OSError:
        return False
    return True


@pytest.fixture
def pipe():
    r, w = os.pipe()
    yield r
    for fd in (r, w):
        if fd_is_open(fd):
            os.close(fd)


@pytest.fixture
def manager():
    return FakeManager()


@pytest.fixture
def state():
    return SystemState()


@pytest.fixture
def changes():
    return []


@pytest.fixture
def lock(manager, state, changes):
    return InhibitorLock(manager, state, who="monitord", why="External monitor in use",
                         on_change=lambda: changes.append(True))


def test_acquire_sends_one_request(lock, manager):
    lock.acquire()

    assert lock.status is InhibitorState.ACQUIRING
    assert len(manager.requests) == 1
    request = manager.requests[0]
    assert request["args"] == ("handle-lid-switch", "monitord", "External monitor in use", "block")
    assert request["interface"] == LOGIND_MANAGER


def test_repeated_acquire_keeps_one_outstanding(lock, manager):
    for _ in range(10):
        lock.acquire()

    assert len(manager.requests) == 1


def test_reply_stores_handle(lock, manager, state, changes, pipe):
    lock.acquire()
    manager.requests[0]["reply"](FakeUnixFd(pipe))

    assert lock.held
    assert state.inhibitor_handle == pipe
    assert changes == [True]

    lock.acquire()
    assert len(manager.requests) == 1


def test_release_closes_handle(lock, manager, state, pipe):
    lock.acquire()
    manager.requests[0]["reply"](FakeUnixFd(pipe))

    lock.release()

    assert lock.status is InhibitorState.FREE
    assert state.inhibitor_handle is None
    assert not fd_is_open(pipe)


def test_release_when_free_is_noop(lock, manager, state):
    lock.release()
    lock.release()

    assert lock.status is InhibitorState.FREE
    assert manager.requests == []
    assert state.inhibitor_handle is None


def test_release_while_acquiring_drops_late_reply(lock, manager, state, changes, pipe):
    lock.acquire()
    lock.release()
    manager.requests[0]["reply"](FakeUnixFd(pipe))

    assert lock.status is InhibitorState.FREE
    assert state.inhibitor_handle is None
    assert not fd_is_open(pipe)
    assert changes == []


def test_latest_intent_wins(lock, manager, state, pipe):
    lock.acquire()
    lock.release()
    lock.acquire()
    manager.requests[0]["reply"](FakeUnixFd(pipe))

    assert len(manager.requests) == 1
    assert lock.held
    assert state.inhibitor_handle == pipe


def test_error_leaves_lock_free(lock, manager, state):
    lock.acquire()
    manager.requests[0]["error"](Exception("access denied"))

    assert lock.status is InhibitorState.FREE
    assert state.inhibitor_handle is None

    lock.acquire()
    assert len(manager.requests) == 2


def test_acquired_lock_triggers_external_only(manager, state, pipe):
    commands = []
    lock = InhibitorLock(manager, state, who="monitord", why="docked")
    reconciler = Reconciler(state, OutputNames("DVI1", "LVDS1"), commands.append, lock)
    lock.on_change = reconciler.apply

    reconciler.update_power(on_battery=False, lid_present=True, lid_closed=True)
    reconciler.update_output(OutputEvent("DVI1", True, True))
    assert commands == []

    manager.requests[0]["reply"](FakeUnixFd(pipe))

    assert commands == [["xrandr", "--output", "LVDS1", "--off"]]
    assert len(manager.requests) == 1
