"""
Fulfilment Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that imports I/O-dependent modules.

Usage:
    from .factory import create_fulfilment_service
    service = create_fulfilment_service(config, event_bus)
"""
from typing import Optional

from core.config_manager import ConfigManager

from .fulfilment_service import FulfilmentService
from .providers import ProviderRegistry, build_provider_registry


def create_fulfilment_service(
    config: Optional[ConfigManager] = None,
    event_bus=None,
    providers: Optional[ProviderRegistry] = None,
    notification_client=None,
    document_client=None,
) -> FulfilmentService:
    """
    Create FulfilmentService with real dependencies.

    This function imports the real repository and HTTP clients (which have
    I/O dependencies). Use this in production, NOT in tests.

    Args:
        config: Configuration manager
        event_bus: Event bus for publishing events
        providers: Provider adapters (defaults to configuration)
        notification_client: Notification service client
        document_client: Document service client

    Returns:
        Configured FulfilmentService instance
    """
    # Import real dependencies here (not at module level)
    from .clients import DocumentClient, NotificationClient
    from .fulfilment_repository import FulfilmentRepository

    if config is None:
        config = ConfigManager("fulfilment_service")
    settings = config.settings

    repository = FulfilmentRepository(config=config)

    return FulfilmentService(
        repository=repository,
        providers=providers or build_provider_registry(settings.providers),
        event_bus=event_bus,
        notification_client=notification_client
        or NotificationClient(base_url=settings.services.notification_service_url),
        document_client=document_client
        or DocumentClient(base_url=settings.services.document_service_url),
    )
