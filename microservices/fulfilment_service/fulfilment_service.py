"""
Fulfilment Service Business Logic

Facade over the router, webhook reconciler and status aggregator used by
the HTTP and event layers.
"""

import logging
from typing import List, Optional

from .models import (
    FulfilmentProvider,
    FulfilmentStatus,
    ItemFulfilmentSummary,
    OrderFulfilmentStatus,
    OrderStatus,
    ProviderInfo,
    RoutingResult,
    WebhookOutcome,
    WebhookReceipt,
)
from .order_router import OrderRouter
from .protocols import (
    DocumentClientProtocol,
    EventBusProtocol,
    FulfilmentRepositoryProtocol,
    NotificationClientProtocol,
    OrderNotFoundError,
    ProviderNotConfiguredError,
)
from .providers import ProviderRegistry
from .providers.base import RawPayload
from .status_aggregator import OrderStatusAggregator
from .webhook_reconciler import WebhookReconciler

logger = logging.getLogger(__name__)


class FulfilmentService:
    """
    Fulfilment orchestration service

    Routes paid orders to print-on-demand providers and reconciles their
    webhooks back into order status.
    """

    def __init__(
        self,
        repository: FulfilmentRepositoryProtocol,
        providers: ProviderRegistry,
        event_bus: Optional[EventBusProtocol] = None,
        notification_client: Optional[NotificationClientProtocol] = None,
        document_client: Optional[DocumentClientProtocol] = None,
    ):
        """
        Initialize Fulfilment Service

        Args:
            repository: Fulfilment repository (dependency injection)
            providers: Provider adapters keyed by FulfilmentProvider
            event_bus: NATS event bus instance (optional)
            notification_client: Shipping email sender (optional)
            document_client: Storybook PDF renderer (optional)
        """
        self.repository = repository
        self.providers = providers
        self.event_bus = event_bus
        self.notification_client = notification_client
        self.document_client = document_client

        self.aggregator = OrderStatusAggregator(repository, event_bus)
        self.router = OrderRouter(
            repository,
            providers,
            self.aggregator,
            document_client=document_client,
            event_bus=event_bus,
        )
        self.reconciler = WebhookReconciler(
            repository,
            providers,
            self.aggregator,
            notification_client=notification_client,
            event_bus=event_bus,
        )

        logger.info("FulfilmentService initialized")

    # Routing

    async def route_order(self, order_id: str) -> RoutingResult:
        """Route an order's pending items to their providers"""
        result = await self.router.route_order_to_providers(order_id)
        if result.provider_orders:
            await self.reconciler.replay_unprocessed(order_id)
        return result

    async def retry_fulfilment(self, item_id: str) -> bool:
        """Operator retry of one failed item"""
        retried = await self.router.retry_item(item_id)
        if retried:
            item = await self.repository.get_order_item(item_id)
            if item is not None:
                await self.reconciler.replay_unprocessed(item.order_id)
        return retried

    # Webhooks

    async def receive_webhook(
        self,
        provider: FulfilmentProvider,
        raw_payload: RawPayload,
        credential: Optional[str],
    ) -> WebhookReceipt:
        """
        Authenticate then process a webhook delivery.

        Raises:
            ProviderNotConfiguredError: no webhook secret for this provider
        """
        adapter = self.providers.get(provider)
        if adapter is None:
            raise ProviderNotConfiguredError(provider, "adapter")

        if not adapter.verify_webhook(raw_payload, credential):
            logger.warning(f"Rejected {provider.value} webhook with invalid credentials")
            return WebhookReceipt(authenticated=False)

        outcome = await self.reconciler.handle_webhook(provider, raw_payload)
        return WebhookReceipt(authenticated=True, outcome=outcome)

    async def handle_webhook(self, provider: FulfilmentProvider, raw_payload: RawPayload) -> WebhookOutcome:
        """Process an already verified webhook"""
        return await self.reconciler.handle_webhook(provider, raw_payload)

    # Status

    async def recompute_order_status(self, order_id: str, delivered: bool = False) -> OrderStatus:
        return await self.aggregator.recompute_order_status(order_id, delivered=delivered)

    async def get_order_fulfilment_status(self, order_id: str) -> OrderFulfilmentStatus:
        """Summarise fulfilment across an order's items"""
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")

        statuses = [item.fulfilment_status for item in order.items]
        return OrderFulfilmentStatus(
            order_id=order.order_id,
            order_status=order.status,
            all_pending=bool(statuses) and all(s == FulfilmentStatus.PENDING for s in statuses),
            all_sent=bool(statuses) and all(s == FulfilmentStatus.SENT for s in statuses),
            all_fulfilled=bool(statuses) and all(s == FulfilmentStatus.FULFILLED for s in statuses),
            has_failed=any(s == FulfilmentStatus.FAILED for s in statuses),
            items=[
                ItemFulfilmentSummary(
                    item_id=item.item_id,
                    provider=item.fulfilment_provider,
                    status=item.fulfilment_status,
                    fulfilment_order_id=item.fulfilment_order_id,
                    tracking_number=item.tracking_number,
                    tracking_url=item.tracking_url,
                )
                for item in order.items
            ],
        )

    def get_available_providers(self) -> List[ProviderInfo]:
        """Providers and whether their credentials are present"""
        return [
            ProviderInfo(
                provider=provider,
                configured=adapter.is_configured,
                webhook_configured=adapter.webhook_configured,
            )
            for provider, adapter in self.providers.items()
        ]

    def is_provider_configured(self, provider: FulfilmentProvider) -> bool:
        adapter = self.providers.get(provider)
        return bool(adapter and adapter.is_configured)

    async def close(self):
        """Wait for background notifications, then release clients and the pool"""
        await self.reconciler.drain()
        for adapter in self.providers.values():
            await adapter.close()
        for resource in (self.notification_client, self.document_client, self.repository):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()
