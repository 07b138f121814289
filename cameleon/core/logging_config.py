from __future__ import annotations

import logging
import logging.config
import sys

from cameleon.config import Settings, get_settings


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure application logging.
    """
    settings = settings or get_settings()
    level_name = (settings.LOG_LEVEL or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
                }
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": sys.stdout,
                }
            },
            "root": {"level": level, "handlers": ["stdout"]},
            "loggers": {
                # Reduce noise: status polling and frame pulls are chatty
                "uvicorn.access": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
                "aiortc": {"level": "WARNING"},
            },
        }
    )
