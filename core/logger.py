"""
Service Logger Setup

Configures the stdlib logging tree for a microservice process.

Usage:
    from core.logger import setup_service_logger
    logger = setup_service_logger("fulfilment_service")
"""

import logging
import sys
from typing import Optional

from core.config import LoggingConfig

_configured_services = set()


def setup_service_logger(
    service_name: str,
    level: Optional[str] = None,
    config: Optional[LoggingConfig] = None,
) -> logging.Logger:
    """
    Configure root handlers once per service and return the service logger.

    Args:
        service_name: Name used for the returned logger
        level: Log level override (defaults to LOG_LEVEL)
        config: Logging config (defaults to values from environment)

    Returns:
        Logger named after the service
    """
    config = config or LoggingConfig.from_env()
    log_level = getattr(logging, (level or config.log_level).upper(), logging.INFO)

    if service_name not in _configured_services:
        root = logging.getLogger()
        root.setLevel(log_level)
        formatter = logging.Formatter(config.log_format)

        if config.enable_console and not any(
            isinstance(h, logging.StreamHandler) and getattr(h, "_service_handler", False)
            for h in root.handlers
        ):
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            console._service_handler = True
            root.addHandler(console)

        if config.log_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)
        _configured_services.add(service_name)

    logger = logging.getLogger(service_name)
    logger.setLevel(log_level)
    return logger
