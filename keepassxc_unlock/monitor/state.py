# keepassxc_unlock/monitor/state.py
"""
Per-session state machine driving credential release.

The monitor owns a (locked, active) pair for its selected session and only
changes it from the event loop. Releases receive the immutable ReleaseTarget
snapshot held by the releaser, never this state.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict

from . import config
from ..guard.privilege import privileged
from ..guard.releaser import CredentialReleaser
from .logger import logger


@dataclass
class MonitorState:
    session_locked: bool = False
    session_active: bool = True


def spawn_thread(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, name="kpu-release", daemon=True).start()


class SessionMonitor:
    def __init__(
        self,
        releaser: CredentialReleaser,
        quit_loop: Callable[[], None],
        spawn: Callable[[Callable[[], None]], None] = spawn_thread,
    ):
        self.releaser = releaser
        self.session_path = releaser.target.session_path
        self.user_id = releaser.target.user_id
        self.quit_loop = quit_loop
        self.spawn = spawn
        self.state = MonitorState()

    # ---------------------------------------------------------
    # Startup
    # ---------------------------------------------------------

    def start(self) -> None:
        """Release once before watching, the login may already be unlocked."""
        logger.info("Startup: unlocking registered KeePassXC database(s) for UID=%d", self.user_id)
        self.releaser.release(config.STARTUP_WAIT)

    # ---------------------------------------------------------
    # Event dispatch
    # ---------------------------------------------------------

    def on_properties_changed(self, changed: Dict) -> None:
        with privileged():
            for key, value in changed.items():
                if key == "LockedHint":
                    self._on_locked_hint(bool(value))
                elif key == "Active":
                    self._on_active(bool(value))

    def _on_locked_hint(self, locked: bool) -> None:
        if not locked and self.state.session_locked:
            logger.info("Unlocking database(s) after screen/session unlock event")
            # off the loop so a quick re-lock is still observed
            releaser = self.releaser
            self.spawn(lambda: releaser.release(config.UNLOCK_WAIT))
        self.state.session_locked = locked

    def _on_active(self, active: bool) -> None:
        if active and not self.state.session_active and not self.state.session_locked:
            logger.info("Unlocking database(s) after session activation event")
            self.releaser.release(config.ACTIVATE_WAIT)
        self.state.session_active = active

    def on_session_removed(self, _session_id: str, session_path: str) -> None:
        if session_path == self.session_path:
            logger.info("Exit on session end for %s", self.session_path)
            self.quit_loop()
