"""Shared pytest fixtures and fakes for the bus, identity and secret collaborators."""

import hashlib
import os

import psutil
import pytest

from keepassxc_unlock.guard import config as guard_config
from keepassxc_unlock.guard import integrity
from keepassxc_unlock.guard.errors import BusConnectionError, DecryptError, ReleaseCallError
from keepassxc_unlock.monitor.sessions import Session

USER_ID = 1000
SESSION_PATH = "/org/freedesktop/login1/session/_32"
KEEPASSXC_PID = 4242
KEEPASSXC_EXE = b"\x7fELF genuine keepassxc build"


# ---------------------------------------------------------
# Identity
# ---------------------------------------------------------

class FakeEuid:
    def __init__(self):
        self.current = 0
        self.history = []
        self.refuse = set()

    def geteuid(self):
        return self.current

    def seteuid(self, uid):
        if uid in self.refuse:
            raise PermissionError(1, "Operation not permitted")
        self.history.append(uid)
        self.current = uid


@pytest.fixture
def euid(monkeypatch):
    fake = FakeEuid()
    monkeypatch.setattr(os, "geteuid", fake.geteuid)
    monkeypatch.setattr(os, "seteuid", fake.seteuid)
    return fake


# ---------------------------------------------------------
# Buses
# ---------------------------------------------------------

def make_session(path=SESSION_PATH, user_id=USER_ID, type="wayland", remote=False, active=True, locked=False):
    return Session(path=path, user_id=user_id, type=type, remote=remote, active=active, locked=locked)


class FakeLoginBus:
    def __init__(self, sessions=None):
        self.sessions = list(sessions or [])
        self.locked = False
        self.list_calls = 0
        self.fail_list = False
        self.fail_subscribe = set()
        self.watchers = {}
        self.unwatched = []
        self._next_id = 1

    def list_sessions(self):
        self.list_calls += 1
        if self.fail_list:
            raise BusConnectionError("ListSessions failed")
        return list(self.sessions)

    def get_session(self, session_path):
        for s in self.sessions:
            if s.path == session_path:
                return s
        raise BusConnectionError(f"Unknown object {session_path}")

    def is_locked(self, session_path):
        return self.locked

    def _watch(self, kind, callback):
        if kind in self.fail_subscribe:
            raise BusConnectionError(f"Failed to subscribe to {kind}")
        sub_id = self._next_id
        self._next_id += 1
        self.watchers[kind] = callback
        return sub_id

    def watch_session_new(self, callback):
        return self._watch("new", callback)

    def watch_session_removed(self, callback):
        return self._watch("removed", callback)

    def watch_session_properties(self, session_path, callback):
        return self._watch("properties", callback)

    def unwatch(self, sub_id):
        self.unwatched.append(sub_id)


class FakeKeePassXC:
    """Stands in for KeePassXC on the user's session bus."""

    def __init__(self, pid=KEEPASSXC_PID):
        self.pid = pid
        self.missing_lookups = 0
        self.lookups = 0
        self.connect_euids = []
        self.open_calls = []
        self.reject = set()

    def connect(self, user_id):
        self.connect_euids.append(os.geteuid())
        return FakeUserBus(self)


class FakeUserBus:
    def __init__(self, server):
        self.server = server
        self.closed = False

    def get_service_pid(self, service_name):
        self.server.lookups += 1
        if self.server.lookups <= self.server.missing_lookups:
            return None
        return self.server.pid

    def open_database(self, database_path, secret, key_path):
        self.server.open_calls.append((database_path, secret, key_path, os.geteuid()))
        if database_path in self.server.reject:
            raise ReleaseCallError(f"Failed to unlock database '{database_path}': wrong key")

    def close(self):
        self.closed = True


# ---------------------------------------------------------
# Secrets and notifications
# ---------------------------------------------------------

class FakeUnsealer:
    """Blobs are 'sealed:<plaintext>'; anything else fails to decrypt."""

    def __init__(self):
        self.calls = []

    def unseal(self, blob, name):
        self.calls.append((blob, name))
        text = blob.decode()
        if not text.startswith("sealed:"):
            raise DecryptError(f"systemd-creds exited with 1: bad credential '{name}'")
        return text[len("sealed:"):].rstrip("\n").encode()


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, user_id, summary, body):
        self.sent.append((user_id, summary, body))


# ---------------------------------------------------------
# Filesystem
# ---------------------------------------------------------

@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    d = tmp_path / "etc"
    d.mkdir()
    monkeypatch.setattr(guard_config, "CONFIG_DIR", str(d))
    return d


@pytest.fixture
def fast_poll(monkeypatch):
    monkeypatch.setattr(guard_config, "POLL_INTERVAL", 0)


def write_record(config_dir, name, db, blob="sealed:secret", key=None, user_id=USER_ID):
    d = config_dir / str(user_id)
    d.mkdir(exist_ok=True)
    lines = [f"DB={db}"]
    if key:
        lines.append(f"KEY={key}")
    lines.append("PASSWORD:")
    path = d / f"{name}.conf"
    path.write_text("\n".join(lines) + "\n" + blob + "\n")
    return path


def write_trusted_hash(config_dir, digest, user_id=USER_ID):
    d = config_dir / str(user_id)
    d.mkdir(exist_ok=True)
    (d / "keepassxc.sha512").write_text(digest + "\n")


@pytest.fixture
def proc_root(tmp_path, monkeypatch):
    """A fake /proc where KEEPASSXC_PID runs KEEPASSXC_EXE."""
    root = tmp_path / "proc"
    exe = root / str(KEEPASSXC_PID) / "exe"
    exe.parent.mkdir(parents=True)
    exe.write_bytes(KEEPASSXC_EXE)
    monkeypatch.setattr(guard_config, "PROC_ROOT", str(root))

    def no_process(pid):
        raise psutil.NoSuchProcess(pid)

    monkeypatch.setattr(integrity.psutil, "Process", no_process)
    return root


@pytest.fixture
def world(config_dir, euid, fast_poll, proc_root):
    """A user with a trusted KeePassXC running and no records yet."""
    write_trusted_hash(config_dir, hashlib.sha512(KEEPASSXC_EXE).hexdigest())
    return {
        "config_dir": config_dir,
        "euid": euid,
        "keepassxc": FakeKeePassXC(),
        "login_bus": FakeLoginBus([make_session()]),
        "unsealer": FakeUnsealer(),
        "notifier": FakeNotifier(),
    }
