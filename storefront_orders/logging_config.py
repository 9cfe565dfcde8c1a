"""
logging_config.py — Centralized Logging Configuration for the Order Service

Configures one logging setup for the whole application so that the order
workflow, the gateway clients and the outbox worker write in the same format.

Features:
    • Console output, plus an optional log file (settings.LOG_FILE)
    • Process ID tagging for multi-worker uvicorn deployments
    • Reduced verbosity for httpx and the SQLAlchemy engine
"""

import logging
import sys

from .config import settings


def setup_logging(log_file=None):
    """
    Configures the global logging system for the application.

    The configuration includes:
        - Log level: INFO
        - Log format: timestamp, log level, process ID, logger name and message
        - Output destinations:
            1. Console (stdout), container friendly
            2. File: `log_file` or settings.LOG_FILE, skipped when empty

    Args:
        log_file (str | None): Overrides settings.LOG_FILE when given.
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    target = settings.LOG_FILE if log_file is None else log_file
    if target:
        handlers.append(logging.FileHandler(target))

    logging.basicConfig(level=logging.INFO, format=log_format, handlers=handlers)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a logger for a module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: A logger that follows the global format and handlers.
    """
    return logging.getLogger(name)
