#!/usr/bin/env python3
"""Service configuration for peer platform services

Collaborators the fulfilment service calls over HTTP: the notification
service (shipping emails) and the document service (storybook PDFs).
"""
import os
from dataclasses import dataclass


@dataclass
class ServiceConfig:
    """Peer service endpoints"""

    # ===========================================
    # Peer Services
    # ===========================================
    notification_service_url: str = "http://localhost:8206"
    document_service_url: str = "http://localhost:8227"

    # Public storefront, used for customer-facing order tracking links
    storefront_url: str = "http://localhost:3000"

    @classmethod
    def from_env(cls) -> 'ServiceConfig':
        """Load service configuration from environment variables"""
        return cls(
            notification_service_url=os.getenv("NOTIFICATION_SERVICE_URL", "http://localhost:8206"),
            document_service_url=os.getenv("DOCUMENT_SERVICE_URL", "http://localhost:8227"),
            storefront_url=os.getenv("STOREFRONT_URL") or os.getenv("APP_URL", "http://localhost:3000"),
        )
