# keepassxc_unlock/guard/store.py
"""
Per-user credential directory: record files, the trusted KeePassXC digest
and the session descriptor handed from the login watcher to the monitor.

Record files are re-read on every call; nothing here caches.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from . import config
from .errors import RecordParseError
from .logger import logger


@dataclass(frozen=True)
class CredentialRecord:
    name: str
    database_path: str
    key_path: str
    encrypted_secret: bytes

    def __repr__(self) -> str:
        return f"CredentialRecord(name={self.name!r}, database_path={self.database_path!r})"


def user_config_dir(user_id: int) -> Path:
    return Path(config.CONFIG_DIR) / str(user_id)


def list_record_paths(user_id: int) -> List[Path]:
    """Record files of the user in a stable (sorted) order."""
    d = user_config_dir(user_id)
    if not d.is_dir():
        return []
    return sorted(p for p in d.glob("*" + config.RECORD_SUFFIX) if p.is_file())


def has_records(user_id: int) -> bool:
    try:
        return bool(list_record_paths(user_id))
    except OSError as e:
        logger.error("Cannot read configuration directory for UID=%d: %s", user_id, e)
        return False


def _record_name(path: Path) -> str:
    if path.name.endswith(config.RECORD_SUFFIX):
        return path.name[: -len(config.RECORD_SUFFIX)]
    return path.stem


def parse_record(path: Path) -> CredentialRecord:
    """
    Parse one record file.

    Header lines (DB=, KEY=) are read until the PASSWORD: sentinel; the rest
    of the file is the encrypted blob, line breaks preserved. A file without
    the sentinel yields an empty blob.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise RecordParseError(f"Failed to open configuration file {path}: {e}") from e

    database_path = key_path = ""
    blob = b""
    lines = data.splitlines(keepends=True)
    for i, raw in enumerate(lines):
        try:
            line = raw.decode("utf-8").rstrip("\r\n")
        except UnicodeDecodeError as e:
            raise RecordParseError(f"Invalid header line {i + 1} in {path}") from e

        if line == config.SECRET_SENTINEL:
            blob = b"".join(lines[i + 1:])
            break
        if line.startswith(config.DB_PREFIX):
            database_path = line[len(config.DB_PREFIX):]
        elif line.startswith(config.KEY_PREFIX):
            key_path = line[len(config.KEY_PREFIX):]
        elif line.strip():
            logger.debug("Ignoring unknown line %d in %s", i + 1, path)

    if not database_path:
        raise RecordParseError(f"No DB= entry in {path}")

    return CredentialRecord(
        name=_record_name(path),
        database_path=database_path,
        key_path=key_path,
        encrypted_secret=blob,
    )


def trusted_hash_path(user_id: int) -> Path:
    return user_config_dir(user_id) / config.TRUSTED_HASH_FILE


def read_trusted_hash(user_id: int) -> Optional[str]:
    """
    The recorded SHA-512 of the KeePassXC executable, or None when the setup
    tool has not recorded one.

    A file that exists but is empty, unreadable or not ASCII yields "", which
    never matches a computed digest.
    """
    path = trusted_hash_path(user_id)
    try:
        f = open(path, "rb")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.error("Failed to open %s: %s", path, e)
        return None

    with f:
        try:
            line = f.readline()
        except OSError as e:
            logger.error("Failed to read %s: %s", path, e)
            return ""
    try:
        return line.decode("ascii").rstrip("\n")
    except UnicodeDecodeError:
        logger.error("Invalid content in %s", path)
        return ""


def write_session_descriptor(user_id: int, session_path: str) -> Path:
    """Overwrite the session the next monitor of this user should attach to."""
    path = user_config_dir(user_id) / config.SESSION_DESCRIPTOR_FILE
    with open(path, "w", encoding="utf-8") as f:
        f.write(f"SESSION_PATH={session_path}\n")
    return path


def read_session_descriptor(user_id: int) -> Optional[str]:
    path = user_config_dir(user_id) / config.SESSION_DESCRIPTOR_FILE
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                key, sep, value = line.strip().partition("=")
                if sep and key == "SESSION_PATH" and value:
                    return value
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("Failed to read %s: %s", path, e)
    return None
