"""
Service Logger Setup

One call per process configures the root handlers from LoggingConfig; every
module then uses logging.getLogger(__name__).
"""

import logging
import sys
from typing import Optional

from core.config import LoggingConfig

_configured = False


def setup_service_logger(service_name: str, config: Optional[LoggingConfig] = None) -> logging.Logger:
    """
    Configure logging for a service and return its logger

    Args:
        service_name: Logger name for the service
        config: Logging configuration (defaults to environment values)

    Returns:
        The service logger
    """
    global _configured
    config = config or LoggingConfig.from_env()
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if not _configured:
        formatter = logging.Formatter(config.log_format)
        root = logging.getLogger()
        root.setLevel(level)

        if config.enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            root.addHandler(console)

        if config.log_file:
            file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)
        _configured = True

    logger = logging.getLogger(service_name)
    logger.setLevel(level)
    return logger


__all__ = ["setup_service_logger"]
