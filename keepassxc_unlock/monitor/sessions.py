# keepassxc_unlock/monitor/sessions.py
"""
logind sessions and the rules for which of them get auto-unlocked.

Two eligibility checks exist on purpose: a freshly created session may not
be marked active yet, so the login watcher only asks for a local graphical
session, while the per-user monitor additionally requires it to be active
before attaching.
"""

from dataclasses import dataclass
from typing import Optional

from . import config
from ..guard.errors import BusConnectionError
from .logger import logger


@dataclass(frozen=True)
class Session:
    path: str
    user_id: int
    type: str
    remote: bool
    active: bool
    locked: bool

    @property
    def graphical(self) -> bool:
        return self.type in config.GRAPHICAL_SESSION_TYPES


def eligible_new_session(session: Session) -> bool:
    return session.graphical and not session.remote


def eligible_for_selection(session: Session) -> bool:
    return eligible_new_session(session) and session.active


def select_session(login_bus, user_id: int) -> Optional[Session]:
    """
    First session of `user_id`, in logind's listing order, that is local,
    graphical and active.
    """
    try:
        sessions = login_bus.list_sessions()
    except BusConnectionError as e:
        logger.error("Failed to list sessions: %s", e)
        return None

    for session in sessions:
        if session.user_id == user_id and eligible_for_selection(session):
            return session
    return None
