"""
Webhook Reconciler

Applies verified provider webhooks to order items. Every delivery is logged
once per dedupe key; the processed flag on that log row is flipped with a
compare-and-set, and only the delivery that flips it sends the shipping
notification. Webhook-path failures are logged and reported as an outcome,
never raised, so providers do not retry unfixable deliveries forever.
"""

import asyncio
import logging
from typing import List, Optional, Set

from pydantic import ValidationError

from .events.publishers import publish_item_status_changed
from .models import (
    FulfilmentProvider,
    FulfilmentStatus,
    Order,
    OrderItem,
    ProviderWebhookEvent,
    WebhookEventKind,
    WebhookOutcome,
    can_transition,
)
from .protocols import (
    ConcurrentUpdateError,
    EventBusProtocol,
    FulfilmentRepositoryProtocol,
    FulfilmentServiceError,
    NotificationClientProtocol,
    OrderItemNotFoundError,
    WebhookPayloadError,
)
from .providers import ProviderAdapter, ProviderRegistry
from .providers.base import RawPayload
from .status_aggregator import OrderStatusAggregator

logger = logging.getLogger(__name__)


class WebhookReconciler:
    """Reconciles provider webhooks into item and order state"""

    MAX_ATTEMPTS = 5

    def __init__(
        self,
        repository: FulfilmentRepositoryProtocol,
        providers: ProviderRegistry,
        aggregator: OrderStatusAggregator,
        notification_client: Optional[NotificationClientProtocol] = None,
        event_bus: Optional[EventBusProtocol] = None,
    ):
        self.repository = repository
        self.providers = providers
        self.aggregator = aggregator
        self.notification_client = notification_client
        self.event_bus = event_bus
        self._background: Set[asyncio.Task] = set()

    async def handle_webhook(self, provider: FulfilmentProvider, raw_payload: RawPayload) -> WebhookOutcome:
        """Process one webhook delivery. Never raises."""
        try:
            return await self._handle(provider, raw_payload)
        except Exception as e:
            logger.error(f"Error processing {provider.value} webhook: {e}", exc_info=True)
            return WebhookOutcome.ERROR

    async def _handle(self, provider: FulfilmentProvider, raw_payload: RawPayload) -> WebhookOutcome:
        adapter = self.providers.get(provider)
        if adapter is None:
            logger.warning(f"No adapter registered for {provider.value}, ignoring webhook")
            return WebhookOutcome.IGNORED

        try:
            event = adapter.parse_webhook(raw_payload)
        except (WebhookPayloadError, ValidationError) as e:
            logger.warning(f"Ignoring malformed {provider.value} webhook: {e}")
            return WebhookOutcome.IGNORED

        order = await self._find_order(event)
        if order is None:
            logger.warning(
                f"{provider.value} webhook {event.event_type} for unknown order "
                f"(external_id={event.external_order_id}, provider_order_id={event.provider_order_id})"
            )
            return WebhookOutcome.UNMATCHED

        items = self._find_items(order, event)
        if not items:
            return await self._defer(order, event)

        # One log row per delivery, on the first item the provider order covers
        owner = items[0]
        stored, created = await self.repository.record_event(
            order_item_id=owner.item_id,
            provider=provider,
            event_type=event.event_type,
            payload=event.raw_payload,
            dedupe_key=event.dedupe_key,
            processed=False,
        )
        if not created and stored.processed:
            logger.info(f"Duplicate {provider.value} webhook {event.event_type} for item {owner.item_id}")
            return WebhookOutcome.DUPLICATE

        changed: List[OrderItem] = []
        target = self._apply_kind(adapter, event, owner)
        if target is not None:
            for item in items:
                if await self._transition(item.item_id, target, event.tracking_number, event.tracking_url):
                    changed.append(item)

        try:
            await self.aggregator.recompute_order_status(
                order.order_id, delivered=event.kind == WebhookEventKind.DELIVERED
            )
        except FulfilmentServiceError as e:
            logger.error(f"Could not recompute status of order {order.order_id}: {e}")

        if not await self.repository.mark_event_processed(stored.event_id):
            logger.info(f"{provider.value} webhook {event.event_type} for item {owner.item_id} already processed")
            return WebhookOutcome.DUPLICATE

        if event.kind == WebhookEventKind.SHIPPED:
            self._dispatch_shipping_notification(order.order_id, event)

        for item in changed:
            await publish_item_status_changed(
                self.event_bus,
                order_id=order.order_id,
                item_id=item.item_id,
                provider=provider,
                status=target,
                provider_event_type=event.event_type,
                tracking_number=event.tracking_number,
                tracking_url=event.tracking_url,
                carrier=event.carrier,
            )

        return WebhookOutcome.PROCESSED

    async def _defer(self, order: Order, event: ProviderWebhookEvent) -> WebhookOutcome:
        """
        Keep a webhook that beat the router to storing the provider order id.

        The event is logged unprocessed against the first of the order's items
        for that provider still awaiting an id; replay_unprocessed applies it
        once routing has written the id.
        """
        awaiting = [
            item for item in order.items
            if item.fulfilment_provider == event.provider and not item.fulfilment_order_id
        ]
        if not awaiting:
            logger.warning(
                f"No order item on order {order.order_id} for {event.provider.value} order {event.provider_order_id}"
            )
            return WebhookOutcome.UNMATCHED

        await self.repository.record_event(
            order_item_id=awaiting[0].item_id,
            provider=event.provider,
            event_type=event.event_type,
            payload=event.raw_payload,
            dedupe_key=event.dedupe_key,
            processed=False,
        )
        logger.warning(
            f"{event.provider.value} webhook {event.event_type} for order {order.order_id} arrived before "
            f"provider order {event.provider_order_id} was stored; kept for replay"
        )
        return WebhookOutcome.UNMATCHED

    async def replay_unprocessed(self, order_id: str) -> int:
        """
        Re-apply logged webhooks of an order that were never processed.

        Returns the number of events processed by this call. Errors are
        logged; the events stay unprocessed for the next replay.
        """
        replayed = 0
        try:
            order = await self.repository.get_order(order_id)
            if order is None:
                return 0
            for item in order.items:
                for stored in await self.repository.get_item_events(item.item_id):
                    if stored.processed:
                        continue
                    outcome = await self.handle_webhook(stored.provider, stored.payload)
                    if outcome == WebhookOutcome.PROCESSED:
                        replayed += 1
        except Exception as e:
            logger.error(f"Could not replay webhooks for order {order_id}: {e}")

        if replayed:
            logger.info(f"Replayed {replayed} deferred webhooks for order {order_id}")
        return replayed

    async def _find_order(self, event: ProviderWebhookEvent) -> Optional[Order]:
        order = None
        if event.external_order_id:
            order = await self.repository.get_order(event.external_order_id)
        if order is None and event.provider_order_id:
            order = await self.repository.find_order_by_fulfilment_order_id(
                event.provider, event.provider_order_id
            )
        return order

    @staticmethod
    def _find_items(order: Order, event: ProviderWebhookEvent) -> List[OrderItem]:
        """Every item the provider order covers, in order position"""
        return [
            item for item in order.items
            if item.fulfilment_provider == event.provider and item.fulfilment_order_id == event.provider_order_id
        ]

    @staticmethod
    def _apply_kind(
        adapter: ProviderAdapter,
        event: ProviderWebhookEvent,
        item: OrderItem,
    ) -> Optional[FulfilmentStatus]:
        """Target item status for this event, or None when nothing changes"""
        if event.kind in (WebhookEventKind.SHIPPED, WebhookEventKind.DELIVERED):
            if event.kind == WebhookEventKind.SHIPPED and not event.tracking_number:
                logger.warning(f"No shipment data in {event.event_type} for item {item.item_id}")
            return FulfilmentStatus.FULFILLED

        if event.kind in (WebhookEventKind.FAILED, WebhookEventKind.CANCELLED):
            logger.error(
                f"{event.provider.value} reported {event.event_type} for item {item.item_id} "
                f"(provider order {event.provider_order_id}): {event.error_message or 'no reason given'}. "
                f"Manual follow-up required"
            )
            return FulfilmentStatus.FAILED

        if event.kind == WebhookEventKind.UPDATED:
            return adapter.map_status(event.provider_status)

        logger.info(f"Unhandled {event.provider.value} webhook type: {event.event_type}")
        return None

    async def _transition(
        self,
        item_id: str,
        target: FulfilmentStatus,
        tracking_number: Optional[str] = None,
        tracking_url: Optional[str] = None,
    ) -> bool:
        """
        Move an item to target with compare-and-set, retrying on conflict.

        Transitions the state machine forbids (including stale events after
        a terminal status) are skipped. Returns True when a write happened.
        """
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            item = await self.repository.get_order_item(item_id)
            if item is None:
                raise OrderItemNotFoundError(f"Order item not found: {item_id}")

            current = item.fulfilment_status
            if not can_transition(current, target):
                logger.warning(f"Ignoring transition {current.value} -> {target.value} for item {item_id}")
                return False

            new_tracking = (
                (tracking_number and tracking_number != item.tracking_number)
                or (tracking_url and tracking_url != item.tracking_url)
            )
            if current == target and not new_tracking:
                return False

            if await self.repository.update_item_fulfilment(
                item_id,
                current,
                target,
                tracking_number=tracking_number,
                tracking_url=tracking_url,
            ):
                logger.info(f"Item {item_id} {current.value} -> {target.value}")
                return True

            logger.debug(f"Item {item_id} changed concurrently, retry {attempt}")

        raise ConcurrentUpdateError(f"Could not update item {item_id}")

    def _dispatch_shipping_notification(self, order_id: str, event: ProviderWebhookEvent) -> None:
        """Send the shipping email without holding up the webhook response"""
        if self.notification_client is None:
            logger.debug(f"No notification client, skipping shipping email for order {order_id}")
            return

        task = asyncio.create_task(
            self._send_shipping_notification(order_id, event.tracking_number, event.tracking_url, event.carrier)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_shipping_notification(
        self,
        order_id: str,
        tracking_number: Optional[str],
        tracking_url: Optional[str],
        carrier: Optional[str],
    ) -> None:
        try:
            sent = await self.notification_client.send_shipping_notification(
                order_id, tracking_number, tracking_url, carrier
            )
            if not sent:
                logger.warning(f"Shipping notification for order {order_id} was not sent")
        except Exception as e:
            logger.error(f"Shipping notification for order {order_id} failed: {e}")

    async def drain(self) -> None:
        """Wait for in-flight notifications (shutdown and tests)"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
