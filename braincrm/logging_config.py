"""
Logging setup for the application.

Modules log through `logging.getLogger(__name__)`, so everything lives under the
"braincrm" logger configured here.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"


def configure_logging(app) -> logging.Logger:
    """Attach one stream handler to the package logger at LOG_LEVEL."""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()

    logger = logging.getLogger("braincrm")
    logger.setLevel(level)

    if not any(getattr(h, "_braincrm", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._braincrm = True
        logger.addHandler(handler)

    return logger
