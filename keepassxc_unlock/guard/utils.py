# keepassxc_unlock/guard/utils.py

import hashlib
import time
from typing import Callable, Optional, TypeVar

from . import config
from .errors import BusConnectionError
from .logger import logger

T = TypeVar("T")


def sha512sum(path: str) -> str:
    """
    Streaming SHA-512 of a file as lowercase hex.
    Raises OSError if the file cannot be read.
    """
    h = hashlib.sha512()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(config.DIGEST_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def poll_until(
    check: Callable[[], Optional[T]],
    attempts: int,
    interval: Optional[float] = None,
    log_every_failure: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[T]:
    """
    Call `check` until it returns a truthy value or `attempts` run out.

    A BusConnectionError raised by `check` counts as a failed attempt. It is
    logged on every attempt when `log_every_failure` is set, otherwise only
    on the last one. Returns None when the budget is exhausted.
    """
    if interval is None:
        interval = config.POLL_INTERVAL

    for n in range(1, attempts + 1):
        last = n == attempts
        try:
            result = check()
        except BusConnectionError as e:
            if log_every_failure or last:
                logger.error("%s", e)
            result = None

        if result:
            return result
        if not last:
            sleep(interval)

    return None
