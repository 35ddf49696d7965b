import signal
import sys

import setproctitle

import gi
gi.require_version("GLib", "2.0")
from gi.repository import GLib

import dbus
from dbus.exceptions import DBusException
from dbus.mainloop.glib import DBusGMainLoop
import xcffib
from loguru import logger

from services.inhibitor import InhibitorLock, get_login_manager
from services.randr import RandrSetupError, RandrSource
from services.reconciler import Reconciler, SystemState
from services.upower import UPowerSource
from utils.async_subprocess import run_logged, shutdown as shutdown_executor
from utils.config import APP_NAME, load_config
from utils.xcb_source import XcbSource

_cleanup_handlers = []


def register_cleanup(handler):
    if handler not in _cleanup_handlers:
        _cleanup_handlers.append(handler)


def cleanup_resources():
    while _cleanup_handlers:
        handler = _cleanup_handlers.pop()
        try:
            handler()
        except Exception as e:
            logger.warning(f"Cleanup handler {handler} failed: {e}")


def setup_logging(level: str):
    logger.remove()
    try:
        logger.add(sys.stderr, level=level.upper())
    except ValueError:
        logger.add(sys.stderr, level="INFO")
        logger.warning(f"Unknown log level {level!r}, using INFO")


def run() -> int:
    config = load_config()
    setup_logging(config.log_level)

    DBusGMainLoop(set_as_default=True)

    try:
        conn = xcffib.connect()
    except xcffib.XcffibException as e:
        logger.error(f"xcb connect failed: {e}")
        return 1
    register_cleanup(conn.disconnect)

    try:
        bus = dbus.SystemBus()
        manager = get_login_manager(bus)
    except DBusException as e:
        logger.error(f"Failed to create logind proxy: {e}")
        return 1

    state = SystemState()
    inhibitor = InhibitorLock(manager, state, who=config.app_name, why=config.inhibit_reason)

    reconciler = Reconciler(state, config.outputs, run_logged, inhibitor, xrandr=config.xrandr)
    inhibitor.on_change = reconciler.apply

    randr = RandrSource(conn, reconciler)
    try:
        randr.setup()
    except (RandrSetupError, xcffib.XcffibException) as e:
        logger.error(f"Failed to set up RANDR: {e}")
        return 1

    loop = GLib.MainLoop()
    exit_code = 0

    # Power first: the display scan must not apply against a default lid state.
    power = UPowerSource(bus, reconciler)
    try:
        power.start()
    except DBusException as e:
        logger.error(f"Failed to subscribe to UPower: {e}")
        return 1
    register_cleanup(power.stop)
    register_cleanup(inhibitor.close)

    try:
        randr.scan()
    except xcffib.XcffibException as e:
        logger.error(f"Failed to enumerate outputs: {e}")
        return 1

    def connection_lost():
        nonlocal exit_code
        logger.error("X connection lost, exiting")
        exit_code = 1
        loop.quit()

    source = XcbSource(conn, randr.handle_event, on_lost=connection_lost)
    source.attach(loop.get_context())
    register_cleanup(source.destroy)

    def quit_loop(signum):
        logger.info(f"Received signal {signum}, shutting down")
        loop.quit()
        return GLib.SOURCE_CONTINUE

    for sig in (signal.SIGINT, signal.SIGTERM):
        watch = GLib.unix_signal_add(GLib.PRIORITY_HIGH, sig, quit_loop, sig)
        register_cleanup(lambda watch=watch: GLib.source_remove(watch))

    logger.info("Watching displays, power and lid")
    loop.run()
    return exit_code


def main() -> int:
    setproctitle.setproctitle(APP_NAME)
    try:
        return run()
    finally:
        cleanup_resources()
        shutdown_executor()


if __name__ == "__main__":
    sys.exit(main())
