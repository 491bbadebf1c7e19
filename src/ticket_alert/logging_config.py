"""Console logging for the ticket monitor.

All ``ticket_alert.*`` loggers route through a single stream handler on the
package logger, so scheduled runs and the initial run share one timestamped
format.
"""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "ticket_alert"

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach the console handler to the package logger and set its level.

    Repeated calls only update the level.
    """
    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.setLevel(level)

    if package_logger.handlers:
        return package_logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT))
    package_logger.addHandler(handler)
    package_logger.propagate = False

    # apscheduler reports skipped and missed ticks on its own logger
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    if not logging.getLogger("apscheduler").handlers:
        logging.getLogger("apscheduler").addHandler(handler)

    return package_logger
