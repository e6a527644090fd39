# keepassxc_unlock/guard/config.py
import os

# Per-user configuration root: <CONFIG_DIR>/<uid>/
CONFIG_DIR = os.getenv("KPU_CONFIG_DIR", "/etc/keepassxc-unlock")
LOG_PATH = os.getenv("KPU_LOG_PATH", "/var/log/keepassxc-unlock.log")

# Files inside the per-user directory
RECORD_SUFFIX = ".conf"
TRUSTED_HASH_FILE = "keepassxc.sha512"
SESSION_DESCRIPTOR_FILE = "session.env"

# Record file markers
DB_PREFIX = "DB="
KEY_PREFIX = "KEY="
SECRET_SENTINEL = "PASSWORD:"

# Decrypted secrets of this size or larger are rejected
MAX_SECRET_SIZE = 4096

# Retry loops
POLL_INTERVAL = float(os.getenv("KPU_POLL_INTERVAL", "1"))

# KeePassXC on the user's session bus
KEEPASSXC_BUS_NAME = "org.keepassxc.KeePassXC.MainWindow"
KEEPASSXC_INTERFACE = "org.keepassxc.KeePassXC.MainWindow"
KEEPASSXC_OBJECT_PATH = "/keepassxc"
KEEPASSXC_OPEN_METHOD = "openDatabase"
USER_BUS_ADDRESS = "unix:path=/run/user/{uid}/bus"
BUS_TIMEOUT_MS = int(os.getenv("KPU_BUS_TIMEOUT_MS", "-1"))

# Process inspection
PROC_ROOT = "/proc"
DIGEST_CHUNK_SIZE = 32768

# External commands
SYSTEMD_CREDS_CMD = os.getenv("KPU_SYSTEMD_CREDS", "systemd-creds")

# Identity
ROOT_UID = 0
