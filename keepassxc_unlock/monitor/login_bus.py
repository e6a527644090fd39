# keepassxc_unlock/monitor/login_bus.py
"""
Client for logind on the system bus.
"""

from typing import Callable, Dict, List

import gi

gi.require_version("Gio", "2.0")
from gi.repository import Gio, GLib  # noqa: E402

from . import config  # noqa: E402
from ..guard.errors import BusConnectionError  # noqa: E402
from .logger import logger  # noqa: E402
from .sessions import Session  # noqa: E402


class LoginBus:
    def __init__(self, connection: Gio.DBusConnection):
        self.connection = connection

    @classmethod
    def connect(cls) -> "LoginBus":
        try:
            return cls(Gio.bus_get_sync(Gio.BusType.SYSTEM, None))
        except GLib.Error as e:
            raise BusConnectionError(f"Failed to connect to system bus: {e.message}") from e

    def _call(self, path, interface, method, params, reply_type):
        try:
            return self.connection.call_sync(
                config.LOGIN_BUS_NAME,
                path,
                interface,
                method,
                params,
                GLib.VariantType(reply_type),
                Gio.DBusCallFlags.NONE,
                config.BUS_TIMEOUT_MS,
                None,
            )
        except GLib.Error as e:
            raise BusConnectionError(f"{method} on {path} failed: {e.message}") from e

    # ---------------------------------------------------------
    # Queries
    # ---------------------------------------------------------

    def get_session(self, session_path: str) -> Session:
        result = self._call(
            session_path,
            config.PROPERTIES_INTERFACE,
            "GetAll",
            GLib.Variant("(s)", (config.LOGIN_SESSION_INTERFACE,)),
            "(a{sv})",
        )
        props: Dict = result.unpack()[0]
        user_id, _user_path = props.get("User", (-1, ""))
        return Session(
            path=session_path,
            user_id=user_id,
            type=props.get("Type", ""),
            remote=bool(props.get("Remote", True)),
            active=bool(props.get("Active", False)),
            locked=bool(props.get("LockedHint", False)),
        )

    def list_sessions(self) -> List[Session]:
        result = self._call(
            config.LOGIN_OBJECT_PATH,
            config.LOGIN_MANAGER_INTERFACE,
            "ListSessions",
            None,
            "(a(susso))",
        )
        sessions = []
        for _session_id, _uid, _user_name, _seat, session_path in result.unpack()[0]:
            try:
                sessions.append(self.get_session(session_path))
            except BusConnectionError as e:
                # session went away between the listing and the lookup
                logger.debug("Skipping session %s: %s", session_path, e)
        return sessions

    def is_locked(self, session_path: str) -> bool:
        """LockedHint of the session; a failed lookup counts as locked."""
        try:
            result = self._call(
                session_path,
                config.PROPERTIES_INTERFACE,
                "Get",
                GLib.Variant("(ss)", (config.LOGIN_SESSION_INTERFACE, "LockedHint")),
                "(v)",
            )
        except BusConnectionError as e:
            logger.error("Failed to get LockedHint: %s", e)
            return True
        return bool(result.unpack()[0])

    # ---------------------------------------------------------
    # Signals
    # ---------------------------------------------------------

    def _subscribe(self, interface, member, path, callback) -> int:
        def _on_signal(_conn, _sender, _path, _iface, _signal, parameters, *_user_data):
            callback(*parameters.unpack())

        sub_id = self.connection.signal_subscribe(
            config.LOGIN_BUS_NAME,
            interface,
            member,
            path,
            None,
            Gio.DBusSignalFlags.NONE,
            _on_signal,
            None,
        )
        if not sub_id:
            raise BusConnectionError(f"Failed to subscribe to receive D-Bus signals for {path}")
        return sub_id

    def watch_session_new(self, callback: Callable[[str, str], None]) -> int:
        return self._subscribe(
            config.LOGIN_MANAGER_INTERFACE, "SessionNew", config.LOGIN_OBJECT_PATH, callback
        )

    def watch_session_removed(self, callback: Callable[[str, str], None]) -> int:
        return self._subscribe(
            config.LOGIN_MANAGER_INTERFACE, "SessionRemoved", config.LOGIN_OBJECT_PATH, callback
        )

    def watch_session_properties(self, session_path: str, callback: Callable[[Dict], None]) -> int:
        def _on_changed(_interface, changed, _invalidated):
            callback(changed)

        return self._subscribe(
            config.PROPERTIES_INTERFACE, "PropertiesChanged", session_path, _on_changed
        )

    def unwatch(self, sub_id: int) -> None:
        self.connection.signal_unsubscribe(sub_id)
