# keepassxc_unlock/guard/user_bus.py
"""
Client for a user's private session bus: owner lookup of a well-known name,
KeePassXC's openDatabase call and desktop notifications.

Connections must be opened while the effective uid is the bus owner's.
"""

from typing import Optional

import gi

gi.require_version("Gio", "2.0")
from gi.repository import Gio, GLib  # noqa: E402

from . import config  # noqa: E402
from .errors import BusConnectionError, ReleaseCallError, UnlockError  # noqa: E402
from .logger import logger  # noqa: E402
from .privilege import as_user  # noqa: E402

NOTIFY_APP_NAME = "keepassxc-unlock"
NOTIFY_ICON = "system-lock-screen"
URGENCY_CRITICAL = 2


class UserBus:
    def __init__(self, connection: Gio.DBusConnection):
        self.connection = connection

    def _call(self, name, path, interface, method, params, reply_type=None):
        return self.connection.call_sync(
            name,
            path,
            interface,
            method,
            params,
            GLib.VariantType(reply_type) if reply_type else None,
            Gio.DBusCallFlags.NONE,
            config.BUS_TIMEOUT_MS,
            None,
        )

    def get_service_pid(self, service_name: str) -> Optional[int]:
        """Pid owning `service_name`, or None if the name has no owner."""
        try:
            result = self._call(
                "org.freedesktop.DBus",
                "/org/freedesktop/DBus",
                "org.freedesktop.DBus",
                "GetConnectionUnixProcessID",
                GLib.Variant("(s)", (service_name,)),
                "(u)",
            )
        except GLib.Error as e:
            logger.debug("No owner for %s yet: %s", service_name, e.message)
            return None
        (pid,) = result.unpack()
        return pid or None

    def open_database(self, database_path: str, secret: str, key_path: str) -> None:
        try:
            self._call(
                config.KEEPASSXC_BUS_NAME,
                config.KEEPASSXC_OBJECT_PATH,
                config.KEEPASSXC_INTERFACE,
                config.KEEPASSXC_OPEN_METHOD,
                GLib.Variant("(sss)", (database_path, secret, key_path)),
            )
        except GLib.Error as e:
            raise ReleaseCallError(
                f"Failed to unlock database '{database_path}': {e.message}"
            ) from e

    def notify(self, summary: str, body: str) -> None:
        hints = {"urgency": GLib.Variant("y", URGENCY_CRITICAL)}
        self._call(
            "org.freedesktop.Notifications",
            "/org/freedesktop/Notifications",
            "org.freedesktop.Notifications",
            "Notify",
            GLib.Variant(
                "(susssasa{sv}i)",
                (NOTIFY_APP_NAME, 0, NOTIFY_ICON, summary, body, [], hints, 0),
            ),
            "(u)",
        )

    def close(self) -> None:
        try:
            self.connection.close_sync(None)
        except GLib.Error as e:
            logger.debug("Closing user bus connection failed: %s", e.message)


def connect_user_bus(user_id: int) -> UserBus:
    address = config.USER_BUS_ADDRESS.format(uid=user_id)
    flags = (
        Gio.DBusConnectionFlags.AUTHENTICATION_CLIENT
        | Gio.DBusConnectionFlags.MESSAGE_BUS_CONNECTION
    )
    try:
        connection = Gio.DBusConnection.new_for_address_sync(address, flags, None, None)
    except GLib.Error as e:
        raise BusConnectionError(f"Failed to connect to session bus: {e.message}") from e
    return UserBus(connection)


class DesktopNotifier:
    """Best-effort critical notification on the user's desktop."""

    def notify(self, user_id: int, summary: str, body: str) -> None:
        try:
            with as_user(user_id):
                bus = connect_user_bus(user_id)
                try:
                    bus.notify(summary, body)
                finally:
                    bus.close()
        except (UnlockError, GLib.Error) as e:
            logger.error("Failed to send desktop notification to UID=%d: %s", user_id, e)
