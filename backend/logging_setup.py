"""Logging configuration for the review service.

One stdout handler on the root logger; uvicorn loggers stay visible and a
second call is a no-op so reloaders do not duplicate output.
"""
import logging
from logging.config import dictConfig

from config import LOG_LEVEL

_DICT_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stdout",
        }
    },
    "root": {"level": LOG_LEVEL, "handlers": ["console"]},
    "loggers": {
        "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
        "uvicorn.error": {"level": "INFO", "handlers": ["console"], "propagate": False},
        "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
    },
}


def configure_logging() -> None:
    """Apply the logging config once (skipped if the root logger already has handlers)."""
    root = logging.getLogger()
    if root.handlers:
        return
    dictConfig(_DICT_CONFIG)
