"""
Order Status Aggregator

The order status is a projection of its items' fulfilment statuses.
derive_order_status() is the pure rule; OrderStatusAggregator loads the
order, applies the rule and writes the result with a compare-and-set on the
status it read.
"""

import logging
from typing import Iterable, Optional

from .events.publishers import publish_order_status_changed
from .models import FulfilmentStatus, OrderStatus
from .protocols import (
    ConcurrentUpdateError,
    EventBusProtocol,
    FulfilmentRepositoryProtocol,
    OrderNotFoundError,
)

logger = logging.getLogger(__name__)

# Set only by payment/refund flows
PROTECTED_ORDER_STATUSES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}

# Order states a fresh submission may move into processing
PRE_FULFILMENT_ORDER_STATUSES = {OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.PROCESSING}


def derive_order_status(
    current: OrderStatus,
    item_statuses: Iterable[FulfilmentStatus],
    delivered: bool = False,
    fresh_submission: bool = False,
) -> OrderStatus:
    """
    Derive the order status from its items.

    Precedence: protected statuses are kept; every item fulfilled gives
    shipped (delivered when a delivered-type event drove this or the order
    was already delivered); every item sent gives processing; a fresh
    submission moves a not-yet-shipped order to processing; otherwise the
    current status is kept.
    """
    if current in PROTECTED_ORDER_STATUSES:
        return current

    statuses = list(item_statuses)
    if statuses and all(s == FulfilmentStatus.FULFILLED for s in statuses):
        if delivered or current == OrderStatus.DELIVERED:
            return OrderStatus.DELIVERED
        return OrderStatus.SHIPPED

    if statuses and all(s == FulfilmentStatus.SENT for s in statuses):
        return OrderStatus.PROCESSING

    if fresh_submission and current in PRE_FULFILMENT_ORDER_STATUSES:
        return OrderStatus.PROCESSING

    return current


class OrderStatusAggregator:
    """Recomputes and persists order status after item changes"""

    MAX_ATTEMPTS = 5

    def __init__(
        self,
        repository: FulfilmentRepositoryProtocol,
        event_bus: Optional[EventBusProtocol] = None,
    ):
        self.repository = repository
        self.event_bus = event_bus

    async def recompute_order_status(
        self,
        order_id: str,
        delivered: bool = False,
        fresh_submission: bool = False,
    ) -> OrderStatus:
        """
        Recompute and store the order status.

        Raises:
            OrderNotFoundError: order does not exist
            ConcurrentUpdateError: status kept changing under us
        """
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            order = await self.repository.get_order(order_id)
            if order is None:
                raise OrderNotFoundError(f"Order not found: {order_id}")

            new_status = derive_order_status(
                order.status,
                [item.fulfilment_status for item in order.items],
                delivered=delivered,
                fresh_submission=fresh_submission,
            )
            if new_status == order.status:
                return new_status

            if await self.repository.update_order_status(order_id, order.status, new_status):
                logger.info(f"Order {order_id} status {order.status.value} -> {new_status.value}")
                await publish_order_status_changed(self.event_bus, order_id, order.status, new_status)
                return new_status

            logger.debug(f"Order {order_id} status changed concurrently, retry {attempt}")

        raise ConcurrentUpdateError(f"Could not update status of order {order_id}")
