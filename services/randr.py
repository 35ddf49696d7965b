"""
RandR output tracking over an xcffib connection.
"""

import xcffib
import xcffib.randr
from xcffib.randr import Connection, Notify, NotifyEvent, NotifyMask
from loguru import logger

from services.reconciler import OutputEvent

SOURCE_CONTINUE = True


class RandrSetupError(Exception):
    """Raised when the RANDR extension cannot be used on the display."""


def output_name(info) -> str:
    return info.name.raw.decode("utf-8", errors="replace")


class RandrSource:
    """
    Feeds RandR output status into the reconciler.

    setup() must run before anything else; scan() seeds the state with every
    known output, and handle_event() is the callback for XcbSource.
    """

    def __init__(self, connection, reconciler):
        self.conn = connection
        self.reconciler = reconciler
        self.randr = None
        self.root = None

    def setup(self):
        ext = self.conn.core.QueryExtension(len("RANDR"), "RANDR").reply()
        if not ext.present:
            raise RandrSetupError("RANDR extension not available")

        self.randr = self.conn(xcffib.randr.key)
        version = self.randr.QueryVersion(1, 3).reply()
        logger.debug(f"RANDR {version.major_version}.{version.minor_version}")

        setup = self.conn.get_setup()
        try:
            self.root = setup.roots[self.conn.pref_screen].root
        except IndexError:
            raise RandrSetupError(f"No screen {self.conn.pref_screen} on display")

        self.randr.SelectInput(self.root, NotifyMask.OutputChange)
        self.conn.flush()

    def query_output(self, output: int):
        """Synchronously fetch one output's status, or None on failure."""
        try:
            info = self.randr.GetOutputInfo(output, xcffib.CurrentTime).reply()
        except xcffib.XcffibException as e:
            logger.warning(f"Failed to query output {output}: {e}")
            return None

        return OutputEvent(
            name=output_name(info),
            connected=info.connection == Connection.Connected,
            has_active_crtc=info.crtc != 0,
        )

    def scan(self):
        """Seed the state from every output on the screen, then reconcile once."""
        resources = self.randr.GetScreenResources(self.root).reply()
        primary = self.randr.GetOutputPrimary(self.root).reply().output

        for output in resources.outputs:
            event = self.query_output(output)
            if event is None:
                continue
            if output == primary:
                logger.info(f"primary output: {event.name}")
            self.reconciler.update_output(event, apply=False)

        self.reconciler.apply()

    def handle_event(self, event) -> bool:
        if not isinstance(event, NotifyEvent):
            logger.debug(f"Unknown xcb event: {type(event).__name__}")
            return SOURCE_CONTINUE

        if event.subCode != Notify.OutputChange:
            logger.debug(f"Unknown randr notify subcode: {event.subCode}")
            return SOURCE_CONTINUE

        status = self.query_output(event.u.oc.output)
        if status is not None:
            self.reconciler.update_output(status)
        return SOURCE_CONTINUE
