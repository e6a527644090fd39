# keepassxc_unlock/guard/errors.py
"""
Failure taxonomy shared by the guard and monitor packages.

Per-record and per-event errors are caught where the batch or event is
handled; none of these escape a release or an event callback.
"""


class UnlockError(Exception):
    """Base class for all auto-unlock failures."""


class BusConnectionError(UnlockError):
    """A bus could not be reached or a bus call failed."""


class PrivilegeError(UnlockError):
    """Switching the effective identity to the target user failed."""


class RecordParseError(UnlockError):
    """A credential record file is unreadable or malformed."""


class DecryptError(UnlockError):
    """The encrypted secret of a record could not be unsealed."""


class ReleaseCallError(UnlockError):
    """KeePassXC rejected or dropped an openDatabase call."""


class ServiceStartError(UnlockError):
    """The service supervisor refused to start a unit."""
