# keepassxc_unlock/monitor/config.py
import os

LOG_PATH = os.getenv("KPU_LOG_PATH", "/var/log/keepassxc-unlock.log")

# logind on the system bus
LOGIN_BUS_NAME = "org.freedesktop.login1"
LOGIN_OBJECT_PATH = "/org/freedesktop/login1"
LOGIN_MANAGER_INTERFACE = "org.freedesktop.login1.Manager"
LOGIN_SESSION_INTERFACE = "org.freedesktop.login1.Session"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
BUS_TIMEOUT_MS = int(os.getenv("KPU_BUS_TIMEOUT_MS", "-1"))

# Session types eligible for auto-unlock
GRAPHICAL_SESSION_TYPES = {"x11", "wayland"}

# Retry budgets (attempts of KPU_POLL_INTERVAL each)
SELECT_ATTEMPTS = int(os.getenv("KPU_SELECT_ATTEMPTS", "30"))
STARTUP_WAIT = int(os.getenv("KPU_STARTUP_WAIT", "60"))
ACTIVATE_WAIT = int(os.getenv("KPU_ACTIVATE_WAIT", "30"))
UNLOCK_WAIT = int(os.getenv("KPU_UNLOCK_WAIT", "10"))

# Service supervisor
SYSTEMCTL_CMD = os.getenv("KPU_SYSTEMCTL", "systemctl")
MONITOR_UNIT = "keepassxc-unlock@{uid}.service"
