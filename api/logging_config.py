"""
Logging configuration for the NetBox IPAM sync service

Call setup_logging() at application startup to configure logging.
The level defaults to the LOG_LEVEL environment variable.
"""

import logging
import logging.config
import os
import sys
from typing import Dict, Any, Optional

# Loggers under our own packages follow the configured level
APP_LOGGERS = ["routers", "nbapi", "sync", "crud", "scheduler", "clients", "utils"]

# Third-party loggers pinned to reduce noise
QUIET_LOGGERS = ["sqlalchemy", "httpcore", "httpx", "apscheduler", "uvicorn.access"]


def get_logging_config(log_level: str = "INFO") -> Dict[str, Any]:
    """
    Get logging configuration dictionary

    Args:
        log_level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Logging configuration dict
    """
    loggers: Dict[str, Any] = {
        name: {"level": log_level, "handlers": ["console"], "propagate": False}
        for name in APP_LOGGERS
    }
    loggers.update({
        name: {"level": "WARNING", "handlers": ["console"], "propagate": False}
        for name in QUIET_LOGGERS
    })
    loggers["uvicorn"] = {"level": "INFO", "handlers": ["console"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(levelname)s:     %(name)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "detailed",
                "stream": sys.stdout,
            },
        },
        "loggers": loggers,
        # Root logger - catches everything not caught by specific loggers
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
    }


def setup_logging(log_level: Optional[str] = None):
    """
    Configure logging for the application

    Args:
        log_level: Log level to use; falls back to LOG_LEVEL, then INFO

    Usage:
        from logging_config import setup_logging
        setup_logging()
    """
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    config = get_logging_config(log_level)
    logging.config.dictConfig(config)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured with level: {log_level}")
