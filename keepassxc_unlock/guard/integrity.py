# keepassxc_unlock/guard/integrity.py
"""
Authenticate the process serving KeePassXC's D-Bus name before any secret
is sent to it.

The pid owning the well-known name is looked up on the user's session bus
under the user's identity, then the SHA-512 of /proc/<pid>/exe is compared
against the digest recorded by the setup tool. Anything other than an exact
match means nothing is released.
"""

import hmac
import os
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Union

import psutil

from . import config
from .errors import BusConnectionError
from .logger import logger
from .privilege import as_user
from .store import read_trusted_hash, trusted_hash_path
from .utils import poll_until, sha512sum

MISMATCH_SUMMARY = "Checksum mismatch in keepassxc"
MISMATCH_BODY = (
    'If KeePassXC has been updated, then run "sudo keepassxc-unlock-setup ..." '
    "for one of the KDBX databases.\n"
    "Otherwise this could be an unknown process snooping on D-Bus.\n"
    "The offending process ID is {pid} having executable pointing to {exe}"
)


@dataclass(frozen=True)
class Authenticated:
    digest: str


@dataclass(frozen=True)
class Unconfigured:
    hash_path: str


@dataclass(frozen=True)
class Mismatch:
    pid: int
    exe_path: str


VerifyResult = Union[Authenticated, Unconfigured, Mismatch]


class Notifier(Protocol):
    def notify(self, user_id: int, summary: str, body: str) -> None:
        ...


def exe_link(pid: int) -> str:
    return os.path.join(config.PROC_ROOT, str(pid), "exe")


def resolve_executable(pid: int) -> str:
    """Real path of the executable of `pid`, following the /proc symlink."""
    link = exe_link(pid)
    try:
        exe = psutil.Process(pid).exe()
        if exe:
            return exe
    except psutil.Error as e:
        logger.debug("psutil could not resolve exe of PID %d: %s", pid, e)
    return os.path.realpath(link)


def lookup_service_pid(user_id: int, service_name: str, connect: Callable, max_wait: int) -> int:
    """
    Poll the user's bus for the pid owning `service_name`.
    Raises BusConnectionError if nothing owns it within `max_wait` attempts.
    """

    def check() -> Optional[int]:
        with as_user(user_id):
            bus = connect(user_id)
            try:
                return bus.get_service_pid(service_name)
            finally:
                bus.close()

    pid = poll_until(check, max_wait)
    if not pid:
        raise BusConnectionError(
            f"Failed to connect to KeePassXC D-Bus API within {max_wait} secs"
        )
    return pid


def verify(
    user_id: int,
    service_name: str,
    max_wait: int,
    connect: Callable,
    notifier: Notifier,
) -> VerifyResult:
    pid = lookup_service_pid(user_id, service_name, connect, max_wait)

    expected = read_trusted_hash(user_id)
    if expected is None:
        hash_path = str(trusted_hash_path(user_id))
        logger.warning(
            "Skipping unlock due to missing %s - run 'sudo keepassxc-unlock-setup'", hash_path
        )
        return Unconfigured(hash_path)

    try:
        current = sha512sum(exe_link(pid))
    except OSError as e:
        logger.error("Failed to compute checksum of PID %d executable: %s", pid, e)
        current = ""

    if current and hmac.compare_digest(current, expected):
        logger.info("KeePassXC (PID %d) matches the recorded checksum", pid)
        return Authenticated(current)

    exe = resolve_executable(pid)
    logger.critical(
        "Aborting unlock due to checksum mismatch in keepassxc (PID %d EXE %s)", pid, exe
    )
    try:
        notifier.notify(user_id, MISMATCH_SUMMARY, MISMATCH_BODY.format(pid=pid, exe=exe))
    except Exception as e:
        logger.error("Failed to send desktop notification for checksum mismatch: %s", e)
    return Mismatch(pid, exe)
