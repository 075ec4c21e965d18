"""
Fulfilment Service Event Handlers

Handlers for events from other services. A paid order is routed to its
fulfilment providers as soon as payment lands.
"""

import logging
from typing import Any, Callable, Dict

from ..protocols import FulfilmentServiceError
from .models import FulfilmentSubscribedEventType

logger = logging.getLogger(__name__)


def _order_id_from(event_data: Dict[str, Any]) -> str:
    order_id = event_data.get("order_id")
    if not order_id:
        metadata = event_data.get("metadata") or {}
        order_id = metadata.get("order_id")
    return order_id


async def handle_order_paid(event_data: Dict[str, Any], fulfilment_service, source_event: str = "order.paid") -> None:
    """
    Handle order.paid / payment.completed events

    Route the order to its providers. Routing is idempotent (only pending
    items are submitted), so receiving both events for one order is harmless.
    """
    order_id = _order_id_from(event_data)
    if not order_id:
        logger.warning(f"{source_event} event missing order_id")
        return

    logger.info(f"Processing {source_event} event for order {order_id}")

    try:
        result = await fulfilment_service.route_order(order_id)
        if result.success:
            logger.info(f"Routed order {order_id}: {len(result.provider_orders)} provider orders")
        else:
            logger.warning(f"Order {order_id} routed with {len(result.errors)} item errors")
    except FulfilmentServiceError as e:
        logger.error(f"Could not route order {order_id} from {source_event}: {e}")
    except Exception as e:
        logger.error(f"Error handling {source_event} event for order {order_id}: {e}", exc_info=True)


def get_event_handlers(fulfilment_service) -> Dict[str, Callable]:
    """
    Return a mapping of event patterns to handler functions

    This will be used in main.py to register event subscriptions.

    Args:
        fulfilment_service: FulfilmentService instance

    Returns:
        Dict mapping event patterns to handler functions
    """
    return {
        event_type.value: (
            lambda event, source=event_type.value: handle_order_paid(event.data, fulfilment_service, source)
        )
        for event_type in FulfilmentSubscribedEventType
    }
