import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("AIRDROP_LOG_FILE", "airdrop.log")

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)-6s %(name)s:%(lineno)d %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": sys.stdout,
        },
        "file": {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": LOG_FILE,
            "mode": "a",
            "delay": True,
        },
    },
    "loggers": {
        "airdrop_tao": {
            "level": LOG_LEVEL,
            "handlers": ["console", "file"],
            "propagate": False,
        },
        # Only warnings and errors from the SDK and its transport
        "bittensor": {
            "level": "WARNING",
            "handlers": ["console", "file"],
            "propagate": False,
        },
        "websockets": {
            "level": "WARNING",
            "handlers": ["console", "file"],
            "propagate": False,
        },
    },
    "root": {
        "level": "WARNING",
        "handlers": ["console", "file"],
    },
}


def setup_logging(level: str | None = None, log_file: str | None = None):
    """Apply the logging configuration."""
    config = {**LOGGING_CONFIG}
    if level or log_file:
        config["handlers"] = {**config["handlers"], "file": {**config["handlers"]["file"]}}
        config["loggers"] = {**config["loggers"], "airdrop_tao": {**config["loggers"]["airdrop_tao"]}}
        if level:
            config["loggers"]["airdrop_tao"]["level"] = level.upper()
        if log_file:
            config["handlers"]["file"]["filename"] = log_file
    logging.config.dictConfig(config)
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
