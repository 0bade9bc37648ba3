# common/logging_config.py
import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(service_name: str) -> logging.Logger:
    """
    Configure root logging once for a service process and return its logger.

    The level comes from LOG_LEVEL (default INFO).
    """
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    return logging.getLogger(service_name)
