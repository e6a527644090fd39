# keepassxc_unlock/monitor/watcher.py
"""
keepassxc-login-monitor

System-wide watcher for new logind sessions. For every new local graphical
session whose owner has registered databases, records the session for the
user's monitor and starts keepassxc-unlock@<uid>.service.
"""

import sys

from .. import __version__
from ..guard import store
from ..guard.errors import BusConnectionError, ServiceStartError
from ..guard.privilege import is_root
from .logger import logger
from .services import ServiceController
from .sessions import eligible_new_session


class SessionWatcher:
    def __init__(self, login_bus, services: ServiceController):
        self.login_bus = login_bus
        self.services = services

    def on_session_new(self, _session_id: str, session_path: str) -> bool:
        """Returns True when a monitor start was requested."""
        logger.info(
            "Checking if session '%s' can be auto-unlocked and looking up its owner", session_path
        )
        try:
            session = self.login_bus.get_session(session_path)
        except BusConnectionError as e:
            logger.error("Failed to look up session %s: %s", session_path, e)
            return False

        if not eligible_new_session(session):
            logger.info("Ignoring session which is not a valid target for auto-unlock")
            return False

        if not store.has_records(session.user_id):
            logger.info(
                "Ignoring session as no KDBX databases have been configured for auto-unlock by UID=%d",
                session.user_id,
            )
            return False

        # one monitor per user; a later session of the same user only
        # overwrites this while the running monitor keeps its own session
        try:
            store.write_session_descriptor(session.user_id, session_path)
        except OSError as e:
            logger.error("Failed to write session descriptor for UID=%d: %s", session.user_id, e)
            return False

        try:
            self.services.start_monitor(session.user_id)
        except ServiceStartError as e:
            logger.error("%s", e)
            return False
        return True


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not is_root():
        logger.error("This program must be run as root")
        return 1
    if argv:
        logger.error("No arguments are expected")
        return 1

    from .lifecycle import EventLoop
    from .login_bus import LoginBus
    from .services import SystemctlController

    logger.info("Starting keepassxc-login-monitor version %s", __version__)
    try:
        login_bus = LoginBus.connect()
        watcher = SessionWatcher(login_bus, SystemctlController())
        sub_id = login_bus.watch_session_new(watcher.on_session_new)
    except BusConnectionError as e:
        logger.error("%s", e)
        return 1

    try:
        EventLoop().run()
    finally:
        login_bus.unwatch(sub_id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
