#!/usr/bin/env python3
"""
Core Module for Microservices Architecture

Shared infrastructure components for the fulfilment platform services.

COMPONENTS:
    - config/: Modular env-driven configuration (infra, services, providers, logging)
    - config_manager.py: Per-service configuration and dependency discovery
    - logger.py: Service logger setup
    - nats_client.py: NATS JetStream event bus
    - postgres_client.py: asyncpg pool wrapper
    - service_discovery.py: Peer service URL resolution

USAGE:
    from core.config_manager import ConfigManager
    from core.logger import setup_service_logger

    config = ConfigManager("fulfilment_service")
    logger = setup_service_logger("fulfilment_service")
"""

from .config_manager import ConfigManager, Environment, ServiceSettings
from .logger import setup_service_logger

__all__ = [
    "ConfigManager",
    "Environment",
    "ServiceSettings",
    "setup_service_logger",
]

__version__ = "2.0.0"
