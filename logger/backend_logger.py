import logging
import sys
from logging.handlers import RotatingFileHandler

from config import LOGS_DIR

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(processName)s %(module)s: %(message)s"
LOG_FILE = LOGS_DIR / "backend.log"


def _build_logger(name: str = "starpack") -> logging.Logger:
    """Configures the shared backend logger once (console + rotating file)."""
    logger = logging.getLogger(name)
    if logger.handlers:
        # Already configured, e.g. when re-imported inside a worker process
        return logger

    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logger.propagate = False
    return logger


backend_logger = _build_logger()
