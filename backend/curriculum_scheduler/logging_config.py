import logging
import os
import sys
from logging.config import dictConfig

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
TELEMETRY_LOG_FORMAT = "%(asctime)s TELEMETRY %(message)s"


def configure_logging() -> None:
    """Configure process logging from CURRICULUM_* environment flags.

    Telemetry records go to stdout on their own handler so they can be shipped
    separately from diagnostic output on stderr.
    """
    level = os.getenv("CURRICULUM_LOG_LEVEL", "INFO").upper()
    telemetry_level = os.getenv("CURRICULUM_TELEMETRY_LOG_LEVEL", "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": os.getenv("CURRICULUM_LOG_FORMAT", DEFAULT_LOG_FORMAT)},
                "telemetry": {"format": TELEMETRY_LOG_FORMAT},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
                "telemetry": {
                    "class": "logging.StreamHandler",
                    "formatter": "telemetry",
                    "stream": sys.stdout,
                },
            },
            "loggers": {
                "curriculum_scheduler.telemetry": {
                    "handlers": ["telemetry"],
                    "level": telemetry_level,
                    "propagate": False,
                },
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )

    if os.getenv("CURRICULUM_DEBUG_SQL", "0") == "1":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
    if os.getenv("CURRICULUM_DEBUG_HTTP", "0") == "1":
        logging.getLogger("httpx").setLevel(logging.DEBUG)
        logging.getLogger("httpcore").setLevel(logging.INFO)
