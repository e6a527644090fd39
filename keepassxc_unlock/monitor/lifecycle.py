# keepassxc_unlock/monitor/lifecycle.py
import signal

import gi

gi.require_version("GLib", "2.0")
from gi.repository import GLib  # noqa: E402

from .logger import logger  # noqa: E402


class EventLoop:
    """
    GLib main loop that also stops on SIGINT/SIGTERM.
    """

    def __init__(self):
        self._loop = GLib.MainLoop()

    def _on_signal(self, signum):
        logger.info("Signal %s received, shutting down...", signum)
        self.quit()
        return GLib.SOURCE_REMOVE

    def run(self) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM):
            GLib.unix_signal_add(GLib.PRIORITY_DEFAULT, signum, self._on_signal, signum)
        self._loop.run()

    def quit(self) -> None:
        if self._loop.is_running():
            self._loop.quit()
