import logging
import os
from logging.handlers import RotatingFileHandler


_logger = None

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger():
    """Return the shared help desk logger, building its handlers on first use."""
    global _logger
    if _logger is not None:
        return _logger

    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logger = logging.getLogger("helpdesk")
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if not logger.handlers:
        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(formatter)
        logger.addHandler(ch)

        # Rotating file handler is skipped on read-only filesystems
        log_file = os.environ.get("LOG_FILE", "helpdesk.log")
        try:
            fh = RotatingFileHandler(log_file, maxBytes=512000, backupCount=3)
            fh.setLevel(level)
            fh.setFormatter(formatter)
            logger.addHandler(fh)
        except OSError:
            logger.warning(f"File logging disabled, cannot open {log_file}")

    _logger = logger
    return logger


def log_exception(err: Exception, context: str = ""):
    logger = get_logger()
    try:
        logger.exception(f"{context} {err}")
    except Exception:
        # Best-effort logging
        print(f"ERROR: {context} {err}")
