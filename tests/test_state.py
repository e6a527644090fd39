"""Tests for the session monitor state machine."""

import os
import threading

import pytest

from keepassxc_unlock.guard.privilege import as_user
from keepassxc_unlock.guard.releaser import ReleaseTarget
from keepassxc_unlock.monitor import config as monitor_config
from keepassxc_unlock.monitor.main import monitor_session
from keepassxc_unlock.monitor.state import MonitorState, SessionMonitor

from .conftest import SESSION_PATH, USER_ID, FakeLoginBus, make_session, write_record


class RecordingReleaser:
    def __init__(self):
        self.target = ReleaseTarget(USER_ID, SESSION_PATH)
        self.budgets = []

    def release(self, max_wait):
        self.budgets.append(max_wait)
        return 0


class Spawner:
    """Collects dispatched tasks; run() executes them like the worker thread would."""

    def __init__(self):
        self.tasks = []

    def __call__(self, fn):
        self.tasks.append(fn)

    def run(self):
        while self.tasks:
            self.tasks.pop(0)()


@pytest.fixture
def machine(euid):
    releaser = RecordingReleaser()
    spawner = Spawner()
    quits = []
    monitor = SessionMonitor(releaser, lambda: quits.append(True), spawn=spawner)
    return monitor, releaser, spawner, quits


def test_initial_state():
    assert MonitorState() == MonitorState(session_locked=False, session_active=True)


def test_startup_release_uses_long_budget(machine):
    monitor, releaser, _, _ = machine
    monitor.start()
    assert releaser.budgets == [monitor_config.STARTUP_WAIT] == [60]


def test_lock_then_unlock_releases_once(machine):
    monitor, releaser, spawner, _ = machine
    monitor.on_properties_changed({"LockedHint": True})
    assert spawner.tasks == []
    monitor.on_properties_changed({"LockedHint": False})
    assert len(spawner.tasks) == 1
    spawner.run()
    assert releaser.budgets == [10]

    monitor.on_properties_changed({"LockedHint": False})
    assert spawner.tasks == []
    assert releaser.budgets == [10]


def test_unlock_release_is_dispatched_not_run_inline(machine):
    monitor, releaser, spawner, _ = machine
    monitor.on_properties_changed({"LockedHint": True})
    monitor.on_properties_changed({"LockedHint": False})
    # a quick re-lock is still seen before the release has run
    monitor.on_properties_changed({"LockedHint": True})
    assert releaser.budgets == []
    assert monitor.state.session_locked is True


def test_repeated_lock_observations_do_nothing(machine):
    monitor, releaser, spawner, _ = machine
    monitor.on_properties_changed({"LockedHint": True})
    monitor.on_properties_changed({"LockedHint": True})
    assert spawner.tasks == [] and releaser.budgets == []


def test_each_unlock_after_a_lock_releases(machine):
    monitor, releaser, spawner, _ = machine
    for _ in range(3):
        monitor.on_properties_changed({"LockedHint": True})
        monitor.on_properties_changed({"LockedHint": False})
    spawner.run()
    assert releaser.budgets == [10, 10, 10]


def test_activation_of_unlocked_session_releases(machine):
    monitor, releaser, spawner, _ = machine
    monitor.on_properties_changed({"Active": False})
    monitor.on_properties_changed({"Active": True})
    assert releaser.budgets == [30]
    assert spawner.tasks == []


def test_activation_of_locked_session_does_nothing(machine):
    monitor, releaser, _, _ = machine
    monitor.on_properties_changed({"LockedHint": True, "Active": False})
    monitor.on_properties_changed({"Active": True})
    assert releaser.budgets == []
    assert monitor.state == MonitorState(session_locked=True, session_active=True)


def test_already_active_does_nothing(machine):
    monitor, releaser, _, _ = machine
    monitor.on_properties_changed({"Active": True})
    assert releaser.budgets == []


def test_other_properties_ignored(machine):
    monitor, releaser, spawner, _ = machine
    monitor.on_properties_changed({"IdleHint": True, "IdleSinceHint": 12345})
    assert monitor.state == MonitorState()
    assert releaser.budgets == [] and spawner.tasks == []


def test_removal_of_own_session_quits(machine):
    monitor, _, _, quits = machine
    monitor.on_session_removed("7", "/org/freedesktop/login1/session/_7")
    assert quits == []
    monitor.on_session_removed("32", SESSION_PATH)
    assert quits == [True]


class FakeLoop:
    def __init__(self, on_run=None):
        self.on_run = on_run
        self.ran = False
        self.quit_called = False

    def run(self):
        self.ran = True
        if self.on_run:
            self.on_run()

    def quit(self):
        self.quit_called = True


class TestMonitorSession:
    def test_startup_release_then_loop_until_removal(self, world):
        write_record(world["config_dir"], "a", "/data/a.kdbx", blob="sealed:secret1")
        bus = world["login_bus"]
        loop = FakeLoop(on_run=lambda: bus.watchers["removed"]("32", SESSION_PATH))

        code = monitor_session(
            USER_ID, bus, loop, world["keepassxc"].connect, world["unsealer"], world["notifier"],
            spawn=lambda fn: fn(),
        )

        assert code == 0
        assert loop.ran and loop.quit_called
        assert [c[:3] for c in world["keepassxc"].open_calls] == [("/data/a.kdbx", "secret1", "")]
        assert set(bus.watchers) == {"properties", "removed"}
        assert len(bus.unwatched) == 2

    def test_unlock_event_releases_again(self, world):
        write_record(world["config_dir"], "a", "/data/a.kdbx", blob="sealed:secret1")
        bus = world["login_bus"]

        def events():
            bus.watchers["properties"]({"LockedHint": True})
            bus.watchers["properties"]({"LockedHint": False})

        monitor_session(
            USER_ID, bus, FakeLoop(on_run=events), world["keepassxc"].connect,
            world["unsealer"], world["notifier"], spawn=lambda fn: fn(),
        )
        assert len(world["keepassxc"].open_calls) == 2

    def test_no_session_is_not_an_error(self, world):
        bus = FakeLoginBus([make_session(remote=True)])
        loop = FakeLoop()
        code = monitor_session(
            USER_ID, bus, loop, world["keepassxc"].connect, world["unsealer"], world["notifier"]
        )
        assert code == 0
        assert not loop.ran
        assert world["keepassxc"].lookups == 0

    def test_subscription_failure_exits_with_error(self, world):
        bus = world["login_bus"]
        bus.fail_subscribe.add("removed")
        loop = FakeLoop()
        code = monitor_session(
            USER_ID, bus, loop, world["keepassxc"].connect, world["unsealer"], world["notifier"]
        )
        assert code == 1
        assert not loop.ran
        assert bus.unwatched == [1]


class EuidRecordingReleaser(RecordingReleaser):
    def __init__(self):
        super().__init__()
        self.euids = []

    def release(self, max_wait):
        self.euids.append(os.geteuid())
        return super().release(max_wait)


def test_event_waits_for_user_bracket_on_another_thread(euid):
    releaser = EuidRecordingReleaser()
    monitor = SessionMonitor(releaser, lambda: None, spawn=Spawner())
    monitor.state.session_active = False

    entered = threading.Event()
    leave = threading.Event()

    def worker():
        with as_user(USER_ID):
            entered.set()
            leave.wait(5)

    def dispatch():
        monitor.on_properties_changed({"Active": True})

    release_thread = threading.Thread(target=worker)
    release_thread.start()
    assert entered.wait(5)

    event_thread = threading.Thread(target=dispatch)
    event_thread.start()
    event_thread.join(timeout=0.2)

    assert event_thread.is_alive()
    assert releaser.euids == []
    assert monitor.state.session_active is False

    leave.set()
    release_thread.join(5)
    event_thread.join(5)

    assert not event_thread.is_alive()
    assert releaser.euids == [0]
    assert releaser.budgets == [monitor_config.ACTIVATE_WAIT]
    assert euid.history == [USER_ID, 0]
