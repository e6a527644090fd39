# keepassxc_unlock/monitor/main.py
"""
keepassxc-unlock <USER>

Monitors one user's graphical session for login, activation and screen
unlock, and unlocks the user's registered KeePassXC databases on each.
Started per user by the login watcher through keepassxc-unlock@<uid>.service.
"""

import argparse
import pwd
import sys
from typing import Callable, Optional

from . import config
from .. import __version__
from ..guard import store
from ..guard.errors import BusConnectionError
from ..guard.privilege import is_root
from ..guard.releaser import CredentialReleaser, ReleaseTarget
from ..guard.utils import poll_until
from .logger import logger
from .sessions import Session, eligible_for_selection, select_session
from .state import SessionMonitor, spawn_thread


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        logger.error("%s", message)
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="keepassxc-unlock",
        description="Monitor a session for login and screen unlock events to unlock "
        "configured KeePassXC databases",
    )
    parser.add_argument("user", metavar="USER", help="user name or ID to be monitored")
    return parser


def resolve_user(name_or_id: str) -> Optional[int]:
    try:
        if name_or_id.isdigit():
            return pwd.getpwuid(int(name_or_id)).pw_uid
        return pwd.getpwnam(name_or_id).pw_uid
    except KeyError:
        return None


# ----------------------------------------------------
# Session selection
# ----------------------------------------------------

def acquire_session(login_bus, user_id: int, attempts: int = None) -> Optional[Session]:
    """
    Session to monitor: the one recorded by the login watcher if it is still
    eligible, else the first eligible one in logind's listing. Retried for
    `attempts` polls.
    """
    if attempts is None:
        attempts = config.SELECT_ATTEMPTS
    preferred = store.read_session_descriptor(user_id)

    def check() -> Optional[Session]:
        if preferred:
            try:
                session = login_bus.get_session(preferred)
                if session.user_id == user_id and eligible_for_selection(session):
                    return session
            except BusConnectionError as e:
                logger.debug("Recorded session %s unavailable: %s", preferred, e)
        return select_session(login_bus, user_id)

    return poll_until(check, attempts)


# ----------------------------------------------------
# Monitoring
# ----------------------------------------------------

def monitor_session(
    user_id: int,
    login_bus,
    loop,
    connect: Callable,
    unsealer,
    notifier,
    spawn: Callable = spawn_thread,
) -> int:
    session = acquire_session(login_bus, user_id)
    if session is None:
        logger.warning("No valid X11/Wayland session found for UID=%d", user_id)
        return 0

    releaser = CredentialReleaser(
        ReleaseTarget(user_id, session.path), login_bus, connect, unsealer, notifier
    )
    monitor = SessionMonitor(releaser, loop.quit, spawn=spawn)
    monitor.start()

    logger.info("Monitoring session %s for UID=%d", session.path, user_id)
    subscriptions = []
    try:
        subscriptions.append(login_bus.watch_session_properties(session.path, monitor.on_properties_changed))
        subscriptions.append(login_bus.watch_session_removed(monitor.on_session_removed))
    except BusConnectionError as e:
        logger.error("%s", e)
        for sub_id in subscriptions:
            login_bus.unwatch(sub_id)
        return 1

    try:
        loop.run()
    finally:
        for sub_id in subscriptions:
            login_bus.unwatch(sub_id)
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if not is_root():
        logger.error("This program must be run as root")
        return 1

    user_id = resolve_user(args.user)
    if user_id is None:
        logger.error("Invalid user or ID '%s'", args.user)
        return 1

    if not store.has_records(user_id):
        logger.warning(
            "No configuration found for UID=%d - run 'sudo keepassxc-unlock-setup ...'", user_id
        )
        return 0

    from ..guard.decryptor import SystemdCredsUnsealer
    from ..guard.user_bus import DesktopNotifier, connect_user_bus
    from .lifecycle import EventLoop
    from .login_bus import LoginBus

    logger.info("Starting keepassxc-unlock version %s for UID=%d", __version__, user_id)
    try:
        login_bus = LoginBus.connect()
    except BusConnectionError as e:
        logger.error("%s", e)
        return 1

    return monitor_session(
        user_id,
        login_bus,
        EventLoop(),
        connect_user_bus,
        SystemdCredsUnsealer(),
        DesktopNotifier(),
    )


if __name__ == "__main__":
    sys.exit(main())
