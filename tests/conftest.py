import pytest

from services.reconciler import OutputNames, Reconciler, SystemState


class FakeInhibitor:
    """Records acquire and release requests."""

    def __init__(self, state):
        self.state = state
        self.calls = []

    def acquire(self):
        self.calls.append("acquire")

    def release(self):
        self.calls.append("release")


class CommandRecorder:
    def __init__(self):
        self.commands = []

    def __call__(self, argv):
        self.commands.append(list(argv))


@pytest.fixture
def outputs():
    return OutputNames(external="DVI1", internal="LVDS1")


@pytest.fixture
def state():
    return SystemState()


@pytest.fixture
def commands():
    return CommandRecorder()


@pytest.fixture
def inhibitor(state):
    return FakeInhibitor(state)


@pytest.fixture
def reconciler(state, outputs, commands, inhibitor):
    return Reconciler(state, outputs, commands, inhibitor)
