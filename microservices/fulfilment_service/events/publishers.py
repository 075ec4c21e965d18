"""
Fulfilment Service Event Publishers

Functions to publish events from fulfilment service. Publishing is best
effort: failures are logged and reported as False, never raised.
"""

import logging
from typing import Optional

from core.nats_client import Event
from ..models import FulfilmentProvider, FulfilmentStatus, OrderStatus, RoutingResult
from .models import (
    FulfilmentEventType,
    ItemStatusChangedEvent,
    OrderRoutedEvent,
    OrderStatusChangedEvent,
    RoutedProviderOrder,
)

logger = logging.getLogger(__name__)

SOURCE = "fulfilment_service"


async def _publish(event_bus, event_type: FulfilmentEventType, data: dict, subject: str) -> bool:
    if not event_bus:
        logger.warning(f"Event bus not available, skipping {event_type.value} event")
        return False

    try:
        event = Event(event_type=event_type.value, source=SOURCE, data=data, subject=subject)
        await event_bus.publish_event(event)
        logger.info(f"Published {event_type.value} event for {subject}")
        return True
    except Exception as e:
        logger.error(f"Failed to publish {event_type.value} event: {e}")
        return False


async def publish_order_routed(event_bus, order_id: str, result: RoutingResult) -> bool:
    """Publish fulfilment.order.routed event"""
    event_data = OrderRoutedEvent(
        order_id=order_id,
        success=result.success,
        provider_orders=[
            RoutedProviderOrder(
                provider=po.provider,
                provider_order_id=po.provider_order_id,
                item_ids=po.item_ids,
            )
            for po in result.provider_orders
        ],
        failed_item_ids=[err.item_id for err in result.errors],
    )
    return await _publish(
        event_bus, FulfilmentEventType.ORDER_ROUTED, event_data.model_dump(mode='json'), order_id
    )


async def publish_item_status_changed(
    event_bus,
    order_id: str,
    item_id: str,
    provider: FulfilmentProvider,
    status: FulfilmentStatus,
    provider_event_type: str,
    tracking_number: Optional[str] = None,
    tracking_url: Optional[str] = None,
    carrier: Optional[str] = None,
) -> bool:
    """Publish fulfilment.item.status_changed event"""
    event_data = ItemStatusChangedEvent(
        order_id=order_id,
        item_id=item_id,
        provider=provider,
        status=status,
        provider_event_type=provider_event_type,
        tracking_number=tracking_number,
        tracking_url=tracking_url,
        carrier=carrier,
    )
    return await _publish(
        event_bus, FulfilmentEventType.ITEM_STATUS_CHANGED, event_data.model_dump(mode='json'), order_id
    )


async def publish_order_status_changed(
    event_bus,
    order_id: str,
    previous_status: OrderStatus,
    status: OrderStatus,
) -> bool:
    """Publish fulfilment.order.status_changed event"""
    event_data = OrderStatusChangedEvent(
        order_id=order_id,
        previous_status=previous_status,
        status=status,
    )
    return await _publish(
        event_bus, FulfilmentEventType.ORDER_STATUS_CHANGED, event_data.model_dump(mode='json'), order_id
    )


__all__ = [
    "publish_order_routed",
    "publish_item_status_changed",
    "publish_order_status_changed",
]
