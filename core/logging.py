"""
Logging configuration
"""

import json
import logging
import sys
from typing import Optional
from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "httpx", "apscheduler")


class ErrorContextFormatter(logging.Formatter):
    """Appends the structured ``error_context`` passed via ``extra`` to the line"""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        error_context = getattr(record, "error_context", None)
        if error_context:
            line = f"{line} | context={json.dumps(error_context, default=str, sort_keys=True)}"
        return line


def setup_logging(level: Optional[str] = None):
    """Configure root logging for the API, the sync worker and the scripts"""

    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ErrorContextFormatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logging.basicConfig(level=log_level, handlers=[handler], force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {level_name} level")
