"""
Logging Setup

Console logging for the CLI and server.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Send ``consultation_pad`` log records to stderr at ``level``."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger = logging.getLogger("consultation_pad")
    logger.setLevel((level or "INFO").upper())
    logger.handlers = [handler]
    return logger
