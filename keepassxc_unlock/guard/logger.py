# keepassxc_unlock/guard/logger.py

import logging
from pathlib import Path
from .config import LOG_PATH


def setup_logger(name="keepassxc_unlock.guard"):
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")

    try:
        Path(LOG_PATH).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(LOG_PATH, mode="a", encoding="utf-8")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    except OSError:
        # not running as root (tests, manual runs): console only
        pass

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)
    return logger


logger = setup_logger()
