"""Logging stdlib : logs applicatifs + logger "audit" (une ligne JSON par événement)."""

from __future__ import annotations

import logging
import logging.config

AUDIT_LOGGER_NAME = "audit"


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
                },
                "audit": {"format": "%(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
                "audit": {
                    "class": "logging.StreamHandler",
                    "formatter": "audit",
                },
            },
            "loggers": {
                AUDIT_LOGGER_NAME: {
                    "handlers": ["audit"],
                    "level": "INFO",
                    "propagate": False,
                },
            },
            "root": {"handlers": ["console"], "level": level.upper()},
        }
    )
