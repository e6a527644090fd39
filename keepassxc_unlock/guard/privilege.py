# keepassxc_unlock/guard/privilege.py
"""
Effective-identity switching for per-user bus access.

The effective uid is process-global, so every bracket holds a single
re-entrant lock: a release running on a worker thread and the event loop
never interleave their identity switches. Failing to get back to the
previous identity terminates the process on the spot.
"""

import os
import threading
from contextlib import contextmanager

from . import config
from .errors import PrivilegeError
from .logger import logger

_euid_lock = threading.RLock()


def change_euid(uid: int) -> None:
    """Set the effective uid, raising PrivilegeError on failure."""
    if os.geteuid() == uid:
        return
    try:
        os.seteuid(uid)
    except OSError as e:
        raise PrivilegeError(f"Failed in seteuid to {uid}: {e}") from e


def _restore(uid: int) -> None:
    try:
        change_euid(uid)
    except PrivilegeError as e:
        logger.critical("Cannot switch back to UID=%d, terminating: %s", uid, e)
        os._exit(1)


@contextmanager
def as_user(uid: int):
    """
    Run the block with effective uid `uid` and restore the previous
    effective uid on every exit path.
    """
    with _euid_lock:
        previous = os.geteuid()
        change_euid(uid)
        try:
            yield
        finally:
            _restore(previous)


@contextmanager
def privileged():
    """
    Hold the identity lock while running as root, so no user bracket on
    another thread is active for the duration of the block.
    """
    with _euid_lock:
        if os.geteuid() != config.ROOT_UID:
            _restore(config.ROOT_UID)
        yield


def is_root() -> bool:
    return os.geteuid() == config.ROOT_UID
