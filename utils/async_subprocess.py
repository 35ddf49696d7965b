"""
Run external commands off the main loop with a small thread pool.
"""

import atexit
import subprocess
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from gi.repository import GLib
from loguru import logger

# xrandr calls must not overlap, so a single worker keeps them ordered.
_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="async_subprocess")
_shutting_down = False


def _cleanup_executor():
    """Cleanup executor on program exit"""
    global _shutting_down
    _shutting_down = True
    _executor.shutdown(wait=False)


atexit.register(_cleanup_executor)


def _deliver(callback, *args):
    callback(*args)
    return GLib.SOURCE_REMOVE


def run_async(
    command: List[str],
    on_success: Optional[Callable[[], None]] = None,
    on_error: Optional[Callable[[Exception], None]] = None,
) -> None:
    """
    Run command (an argument vector, never a shell string) in the pool.

    Callbacks are delivered on the GLib main loop via idle_add.
    """
    if _shutting_down:
        return
    if isinstance(command, str):
        raise TypeError("command must be a list of arguments")

    def worker():
        if _shutting_down:
            return

        try:
            subprocess.run(command, check=True, capture_output=True)
            if on_success and not _shutting_down:
                GLib.idle_add(_deliver, on_success)
        except (OSError, subprocess.SubprocessError) as e:
            if on_error and not _shutting_down:
                GLib.idle_add(_deliver, on_error, e)

    _executor.submit(worker)


def run_logged(command: List[str]) -> None:
    """run_async with results reported through the log."""

    def on_success():
        logger.debug(f"{command[0]} finished: {command[1:]}")

    def on_error(e):
        if isinstance(e, subprocess.CalledProcessError):
            stderr = (e.stderr or b"").decode(errors="replace").strip()
            logger.error(f"{command[0]} exited with {e.returncode}: {stderr}")
        else:
            logger.error(f"Failed to run {command[0]}: {e}")

    logger.debug(f"Running {command}")
    run_async(command, on_success=on_success, on_error=on_error)


def shutdown():
    """Manually shutdown the thread pool (called automatically on exit)"""
    _cleanup_executor()
