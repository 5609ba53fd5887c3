"""
Logging Configuration

Structured logging setup for containerized environments.
Outputs to stdout so the hosting platform's log collector picks it up.
"""

from __future__ import annotations

import sys
from logging.config import dictConfig

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None) -> None:
    """
    Initialize application logging with consistent formatting.

    Configuration:
        - Output: stdout
        - Format: Timestamp | Level | Module | Message
        - Level: ``level`` argument, else the LOG_LEVEL setting

    Note:
        Call once at application startup (module import of ``app.main``
        or the top of a script).
    """
    log_level = (level or settings.LOG_LEVEL).upper()

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": LOG_FORMAT,
                "datefmt": DATE_FORMAT,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "default",
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        "loggers": {
            "app": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn": {"handlers": ["console"], "level": "INFO", "propagate": False},
            "uvicorn.access": {
                "handlers": ["console"],
                "level": "INFO",
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "level": "WARNING",  # SQL echo only when debugging
                "handlers": ["console"],
                "propagate": False,
            },
            "alembic": {"handlers": ["console"], "level": "INFO", "propagate": False},
        },
    }

    dictConfig(logging_config)
