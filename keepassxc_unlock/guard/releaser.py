# keepassxc_unlock/guard/releaser.py

from dataclasses import dataclass
from typing import Callable

from . import config
from .decryptor import SecretUnsealer, decrypt_secret
from .errors import UnlockError
from .integrity import Authenticated, Notifier, verify
from .logger import logger
from .privilege import as_user
from .store import list_record_paths, parse_record


@dataclass(frozen=True)
class ReleaseTarget:
    """Immutable snapshot of what a release acts on."""
    user_id: int
    session_path: str


class CredentialReleaser:
    """
    Unlocks every registered KDBX database of one user through KeePassXC's
    D-Bus API.

    `login_bus` answers whether the session is locked, `connect` opens the
    user's session bus (called under the user identity), `unsealer` decrypts
    record secrets and `notifier` raises the desktop alert on a checksum
    mismatch.
    """

    def __init__(
        self,
        target: ReleaseTarget,
        login_bus,
        connect: Callable,
        unsealer: SecretUnsealer,
        notifier: Notifier,
        service_name: str = config.KEEPASSXC_BUS_NAME,
    ):
        self.target = target
        self.login_bus = login_bus
        self.connect = connect
        self.unsealer = unsealer
        self.notifier = notifier
        self.service_name = service_name

    # ---------------------------------------------------------
    # Batch
    # ---------------------------------------------------------

    def release(self, max_wait: int) -> int:
        """
        Run one release batch; returns the number of databases unlocked.
        """
        user_id = self.target.user_id

        # the trigger may be stale by now
        if self.login_bus.is_locked(self.target.session_path):
            logger.warning("Skipping unlock since screen/session is still locked!")
            return 0

        try:
            result = verify(user_id, self.service_name, max_wait, self.connect, self.notifier)
        except UnlockError as e:
            logger.error("Aborting unlock for UID=%d: %s", user_id, e)
            return 0
        if not isinstance(result, Authenticated):
            return 0

        try:
            paths = list_record_paths(user_id)
        except OSError as e:
            logger.error("Cannot list configuration files for UID=%d: %s", user_id, e)
            return 0

        unlocked = 0
        for path in paths:
            try:
                self._release_one(path)
                unlocked += 1
            except UnlockError as e:
                logger.error("%s", e)

        logger.info("Unlocked %d of %d database(s) for UID=%d", unlocked, len(paths), user_id)
        return unlocked

    # ---------------------------------------------------------
    # Single record
    # ---------------------------------------------------------

    def _release_one(self, path) -> None:
        record = parse_record(path)
        secret = decrypt_secret(record, self.unsealer)
        with as_user(self.target.user_id):
            bus = self.connect(self.target.user_id)
            try:
                bus.open_database(record.database_path, secret, record.key_path)
            finally:
                bus.close()
        logger.info("Unlocked database '%s'", record.database_path)
