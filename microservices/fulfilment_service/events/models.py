"""
Fulfilment Service Event Models

Pydantic models for events published by fulfilment service
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models import FulfilmentProvider, FulfilmentStatus, OrderStatus


# =============================================================================
# Event Type Definitions (Service-Specific)
# =============================================================================

class FulfilmentEventType(str, Enum):
    """
    Events published by fulfilment_service.

    Stream: fulfilment-stream
    Subjects: fulfilment.>
    """
    ORDER_ROUTED = "fulfilment.order.routed"
    ITEM_STATUS_CHANGED = "fulfilment.item.status_changed"
    ORDER_STATUS_CHANGED = "fulfilment.order.status_changed"


class FulfilmentSubscribedEventType(str, Enum):
    """Events that fulfilment_service subscribes to from other services."""
    ORDER_PAID = "order.paid"
    PAYMENT_COMPLETED = "payment.completed"


# =============================================================================
# Event Data Models
# =============================================================================

class RoutedProviderOrder(BaseModel):
    """Provider order created while routing"""
    provider: FulfilmentProvider
    provider_order_id: str
    item_ids: List[str] = Field(default_factory=list)


class OrderRoutedEvent(BaseModel):
    """Event published after an order has been routed to its providers"""
    order_id: str
    success: bool
    provider_orders: List[RoutedProviderOrder] = Field(default_factory=list)
    failed_item_ids: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ItemStatusChangedEvent(BaseModel):
    """Event published when a webhook changes a line item"""
    order_id: str
    item_id: str
    provider: FulfilmentProvider
    status: FulfilmentStatus
    provider_event_type: str
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    carrier: Optional[str] = None


class OrderStatusChangedEvent(BaseModel):
    """Event published when the aggregated order status moves"""
    order_id: str
    previous_status: OrderStatus
    status: OrderStatus
