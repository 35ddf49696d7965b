"""
Display topology and lid inhibitor reconciliation.

Every update from the display, power and inhibitor sources lands in a single
SystemState record, after which the whole decision is recomputed from that
record alone. Nothing about previously chosen topologies is remembered, so
updates may arrive in any order and any number of times.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from loguru import logger


class Topology(Enum):
    DUALHEAD = "dualhead"
    INTERNAL_ONLY = "internal-only"
    EXTERNAL_ONLY = "external-only"
    UNCHANGED = "unchanged"


class OutputRole(Enum):
    EXTERNAL = "external"
    INTERNAL = "internal"


@dataclass
class SystemState:
    on_battery: bool = False
    lid_present: bool = False
    lid_closed: bool = False
    ext_display_present: bool = False
    ext_display_active: bool = False
    int_display_present: bool = False
    int_display_active: bool = False
    # Owned by InhibitorLock; read-only here.
    inhibitor_handle: Optional[int] = None

    @property
    def inhibitor_held(self) -> bool:
        return self.inhibitor_handle is not None


@dataclass(frozen=True)
class OutputEvent:
    name: str
    connected: bool
    has_active_crtc: bool


@dataclass(frozen=True)
class OutputNames:
    external: str
    internal: str

    def role_of(self, name: str) -> Optional[OutputRole]:
        if name == self.external:
            return OutputRole.EXTERNAL
        if name == self.internal:
            return OutputRole.INTERNAL
        return None


def decide_topology(state: SystemState) -> Topology:
    """Pick the topology for state. The first matching rule wins."""
    lid_open = not state.lid_closed
    ext_idle = state.ext_display_present and not state.ext_display_active
    int_idle = state.int_display_present and not state.int_display_active

    if lid_open and (ext_idle or int_idle):
        return Topology.DUALHEAD

    if state.ext_display_active and not state.ext_display_present:
        return Topology.INTERNAL_ONLY

    if (state.ext_display_active and state.ext_display_present
            and state.lid_closed and state.inhibitor_held):
        return Topology.EXTERNAL_ONLY

    return Topology.UNCHANGED


def wants_inhibitor(state: SystemState) -> bool:
    """Lid switch handling is blocked only on AC with an external screen in use."""
    return (not state.on_battery
            and state.lid_present
            and state.ext_display_present
            and state.ext_display_active)


def topology_args(topology: Topology, outputs: OutputNames) -> List[str]:
    """xrandr arguments realizing topology; empty for UNCHANGED."""
    ext, int_ = outputs.external, outputs.internal

    if topology is Topology.DUALHEAD:
        return ["--output", ext, "--auto", "--above", int_, "--output", int_, "--auto"]
    if topology is Topology.INTERNAL_ONLY:
        return ["--output", ext, "--off", "--output", int_, "--auto"]
    if topology is Topology.EXTERNAL_ONLY:
        return ["--output", int_, "--off"]
    return []


class Reconciler:
    """
    Owns SystemState and turns it into display commands and inhibitor calls.

    run_command receives a full argument vector and is expected not to block
    the loop. inhibitor needs acquire() and release(), both of which must be
    no-ops when the lock is already in the requested state.
    """

    def __init__(
        self,
        state: SystemState,
        outputs: OutputNames,
        run_command: Callable[[List[str]], None],
        inhibitor,
        xrandr: str = "xrandr",
    ):
        self.state = state
        self.outputs = outputs
        self.run_command = run_command
        self.inhibitor = inhibitor
        self.xrandr = xrandr

    def update_output(self, event: OutputEvent, apply: bool = True):
        """Record the status of one output, then reconcile."""
        role = self.outputs.role_of(event.name)
        logger.info(
            f"output {event.name} connected: {event.connected}, "
            f"crtc: {event.has_active_crtc}"
        )

        if role is OutputRole.EXTERNAL:
            self.state.ext_display_present = event.connected
            self.state.ext_display_active = event.has_active_crtc
        elif role is OutputRole.INTERNAL:
            self.state.int_display_present = event.connected
            self.state.int_display_active = event.has_active_crtc
        else:
            logger.debug(f"Ignoring unmanaged output {event.name}")
            return

        if apply:
            self.apply()

    def update_power(self, on_battery: bool, lid_present: bool, lid_closed: bool):
        """Overwrite the power and lid fields, then reconcile."""
        self.state.on_battery = on_battery
        self.state.lid_present = lid_present
        self.state.lid_closed = lid_closed
        self.apply()

    def apply(self) -> Topology:
        """Recompute and enact the topology and inhibitor decisions."""
        topology = decide_topology(self.state)
        logger.debug(f"Reconciling {self.state} -> {topology.value}")

        if topology is not Topology.UNCHANGED:
            logger.info(f"Switching to {topology.value} layout")
            self.run_command([self.xrandr, *topology_args(topology, self.outputs)])

        if wants_inhibitor(self.state):
            self.inhibitor.acquire()
        else:
            self.inhibitor.release()

        return topology
