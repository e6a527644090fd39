# keepassxc_unlock/guard/__init__.py

"""
Credential side of auto-unlock: identity switching, credential records,
integrity verification and release to KeePassXC.

The D-Bus client (`user_bus`) is not imported here; it needs PyGObject and
is wired in by the command line entry points.
"""

from .decryptor import SystemdCredsUnsealer, decrypt_secret
from .integrity import Authenticated, Mismatch, Unconfigured, verify
from .privilege import as_user, privileged
from .releaser import CredentialReleaser, ReleaseTarget
from .store import CredentialRecord, has_records, parse_record

__all__ = [
    "SystemdCredsUnsealer",
    "decrypt_secret",
    "Authenticated",
    "Mismatch",
    "Unconfigured",
    "verify",
    "as_user",
    "privileged",
    "CredentialReleaser",
    "ReleaseTarget",
    "CredentialRecord",
    "has_records",
    "parse_record",
]
