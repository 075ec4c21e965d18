"""
Service Discovery Helper Module

Resolves peer service base URLs from configuration. Each service can be
overridden with a ``<SERVICE_NAME>_URL`` environment variable, e.g.
``NOTIFICATION_SERVICE_URL``.
"""

import logging
import os
from typing import Dict, Optional

from core.config import ServiceConfig

logger = logging.getLogger(__name__)


class ServiceDiscovery:
    """Helper class for environment-based service discovery"""

    def __init__(self, service_config: Optional[ServiceConfig] = None):
        """
        Initialize service discovery helper

        Args:
            service_config: Peer service endpoints (defaults to environment)
        """
        config = service_config or ServiceConfig.from_env()
        self._defaults: Dict[str, str] = {
            "notification_service": config.notification_service_url,
            "document_service": config.document_service_url,
        }

    def get_service_url(self, service_name: str) -> str:
        """
        Get service base URL

        Args:
            service_name: Name of the service to discover

        Returns:
            Base URL without trailing slash

        Raises:
            ValueError: If service is not known and not set in the environment
        """
        url = os.getenv(f"{service_name.upper()}_URL") or self._defaults.get(service_name)
        if not url:
            raise ValueError(f"Service {service_name} not configured")
        logger.debug(f"Discovered {service_name} at {url}")
        return url.rstrip("/")

    def get_notification_service_url(self) -> str:
        """Get notification service URL"""
        return self.get_service_url("notification_service")

    def get_document_service_url(self) -> str:
        """Get document service URL"""
        return self.get_service_url("document_service")


def get_service_discovery() -> ServiceDiscovery:
    """Get service discovery helper"""
    return ServiceDiscovery()
