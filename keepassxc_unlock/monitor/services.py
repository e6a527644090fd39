# keepassxc_unlock/monitor/services.py

import subprocess
from typing import List, Protocol

from . import config
from ..guard.errors import ServiceStartError
from .logger import logger


class ServiceController(Protocol):
    def start_monitor(self, user_id: int) -> None:
        ...


class SystemctlController:
    """
    Starts the per-user template unit. Starting an instance that is already
    running is a no-op in systemd, so one monitor per user is guaranteed.
    """

    def __init__(self, command: str = None):
        self.command = command or config.SYSTEMCTL_CMD

    def _argv(self, user_id: int) -> List[str]:
        return [self.command, "start", config.MONITOR_UNIT.format(uid=user_id)]

    def start_monitor(self, user_id: int) -> None:
        argv = self._argv(user_id)
        logger.info("Executing: %s", " ".join(argv))
        try:
            proc = subprocess.run(argv, stdout=subprocess.PIPE, stderr=subprocess.PIPE, check=False)
        except OSError as e:
            raise ServiceStartError(f"Failed to run {self.command}: {e}") from e
        if proc.returncode != 0:
            err = proc.stderr.decode("utf-8", errors="replace").strip()
            raise ServiceStartError(f"Failed to start '{argv[-1]}': {err}")
