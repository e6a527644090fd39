# keepassxc_unlock/guard/decryptor.py
"""
Secret unsealing for credential records.

The unsealing itself is delegated to systemd-creds, which binds each blob
to the record name it was encrypted under. Plaintext is only ever returned
to the caller; it is never written anywhere.
"""

import subprocess
from typing import List, Protocol

from . import config
from .errors import DecryptError
from .store import CredentialRecord


class SecretUnsealer(Protocol):
    def unseal(self, blob: bytes, name: str) -> bytes:
        ...


class SystemdCredsUnsealer:
    """Runs `systemd-creds --name=<name> decrypt - -` with the blob on stdin."""

    def __init__(self, command: str = None):
        self.command = command or config.SYSTEMD_CREDS_CMD

    def _argv(self, name: str) -> List[str]:
        return [self.command, f"--name={name}", "decrypt", "-", "-"]

    def unseal(self, blob: bytes, name: str) -> bytes:
        try:
            proc = subprocess.run(
                self._argv(name),
                input=blob,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=False,
            )
        except OSError as e:
            raise DecryptError(f"Failed to run {self.command} for decryption: {e}") from e

        if proc.returncode != 0:
            err = proc.stderr.decode("utf-8", errors="replace").strip()
            raise DecryptError(f"{self.command} exited with {proc.returncode}: {err}")
        return proc.stdout


def decrypt_secret(record: CredentialRecord, unsealer: SecretUnsealer) -> str:
    """Unseal the secret of `record`, rejecting oversized or empty results."""
    if not record.encrypted_secret.strip():
        raise DecryptError(f"No encrypted password found in record '{record.name}'")

    plaintext = unsealer.unseal(record.encrypted_secret, record.name)
    if len(plaintext) >= config.MAX_SECRET_SIZE:
        raise DecryptError(
            f"Password for '{record.database_path}' exceeds {config.MAX_SECRET_SIZE - 1} characters!"
        )
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptError(f"Decrypted password for '{record.name}' is not valid UTF-8") from e
