"""
Fulfilment Service Events Module

Exports all event-related functionality for fulfilment service
"""

from .models import (
    FulfilmentEventType,
    FulfilmentSubscribedEventType,
    RoutedProviderOrder,
    OrderRoutedEvent,
    ItemStatusChangedEvent,
    OrderStatusChangedEvent,
)

from .publishers import (
    publish_order_routed,
    publish_item_status_changed,
    publish_order_status_changed,
)

from .handlers import get_event_handlers, handle_order_paid

__all__ = [
    # Event Types
    "FulfilmentEventType",
    "FulfilmentSubscribedEventType",
    # Event Models
    "RoutedProviderOrder",
    "OrderRoutedEvent",
    "ItemStatusChangedEvent",
    "OrderStatusChangedEvent",
    # Publishers
    "publish_order_routed",
    "publish_item_status_changed",
    "publish_order_status_changed",
    # Handlers
    "get_event_handlers",
    "handle_order_paid",
]
