"""
logging_config.py — Log Output for Checkout and Dispatch

Every module logs through the root logger configured here. Operators follow
individual orders by the `[Order: <number>]` prefix and courier calls by the
`[Courier: <type>]` prefix, so the format only adds time, level and PID.

Output goes to LOG_FILE for later reconciliation of dispatch batches and to
stdout for the container runtime. Library loggers that log every HTTP request
or SQL statement are held at WARNING.
"""

import logging
import sys

from .config import LOG_FILE, LOG_LEVEL

LOG_FORMAT = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(message)s'
QUIET_LOGGERS = ("pika", "httpx", "httpcore", "sqlalchemy.engine")


def setup_logging(level=None, log_file: str = None):
    """
    Installs the file and stdout handlers on the root logger.

    Args:
        level (int | str | None): Root level; LOG_LEVEL from the environment when omitted.
        log_file (str | None): Path of the persistent log; LOG_FILE when omitted.
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file or LOG_FILE:
        handlers.insert(0, logging.FileHandler(log_file or LOG_FILE))

    logging.basicConfig(level=level or LOG_LEVEL, format=LOG_FORMAT, handlers=handlers)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name):
    return logging.getLogger(name)
