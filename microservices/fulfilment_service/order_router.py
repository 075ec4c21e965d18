"""
Order Router

Partitions an order's pending line items by fulfilment provider and submits
one provider order per partition (or per item, for providers that take one
item per order). A failing submission only fails its own items; partial
success is a normal outcome reported through RoutingResult.
"""

import json
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from .events.publishers import publish_order_routed
from .models import (
    FulfilmentProvider,
    FulfilmentStatus,
    Order,
    OrderItem,
    ProviderOrder,
    ProviderSubmission,
    RoutingError,
    RoutingResult,
)
from .protocols import (
    DocumentClientProtocol,
    EventBusProtocol,
    FulfilmentRepositoryProtocol,
    FulfilmentServiceError,
    FulfilmentValidationError,
    InvalidFulfilmentStateError,
    OrderItemNotFoundError,
    OrderNotFoundError,
    ProviderError,
    ProviderNotConfiguredError,
    StorybookNotFoundError,
)
from .providers import ProviderAdapter, ProviderRegistry, SubmissionContext
from .status_aggregator import OrderStatusAggregator

logger = logging.getLogger(__name__)

ContextBuilder = Callable[[Order, List[OrderItem]], Awaitable[Optional[SubmissionContext]]]

ORDER_CREATED_EVENT = "order_created"


def order_created_dedupe_key(provider: FulfilmentProvider, provider_order_id: str) -> str:
    return f"{provider.value}:{ORDER_CREATED_EVENT}:{provider_order_id}"


def _error_text(error: Exception) -> str:
    if isinstance(error, ProviderError):
        return error.message
    return str(error) or error.__class__.__name__


class OrderRouter:
    """Submits orders to fulfilment providers"""

    def __init__(
        self,
        repository: FulfilmentRepositoryProtocol,
        providers: ProviderRegistry,
        aggregator: OrderStatusAggregator,
        document_client: Optional[DocumentClientProtocol] = None,
        event_bus: Optional[EventBusProtocol] = None,
    ):
        self.repository = repository
        self.providers = providers
        self.aggregator = aggregator
        self.document_client = document_client
        self.event_bus = event_bus

        # Product preconditions per provider
        self._context_builders: Dict[FulfilmentProvider, ContextBuilder] = {
            FulfilmentProvider.BLURB: self._storybook_context,
        }

    def _adapter(self, provider: FulfilmentProvider) -> ProviderAdapter:
        adapter = self.providers.get(provider)
        if adapter is None or not adapter.is_configured:
            raise ProviderNotConfiguredError(provider)
        return adapter

    async def route_order_to_providers(self, order_id: str) -> RoutingResult:
        """
        Submit every pending item of an order to its provider.

        Raises:
            OrderNotFoundError: order does not exist
            FulfilmentValidationError: order has no items
            ProviderNotConfiguredError: a needed provider has no credentials
        """
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        if not order.items:
            raise FulfilmentValidationError(f"Order {order_id} has no items")

        partitions: Dict[FulfilmentProvider, List[OrderItem]] = {}
        for item in order.items:
            if item.fulfilment_status != FulfilmentStatus.PENDING:
                logger.debug(f"Skipping item {item.item_id} in status {item.fulfilment_status.value}")
                continue
            partitions.setdefault(item.fulfilment_provider, []).append(item)

        # Availability check before anything billable happens
        adapters = {provider: self._adapter(provider) for provider in partitions}

        result = RoutingResult()
        for provider, items in partitions.items():
            adapter = adapters[provider]
            batches = [items] if adapter.batches_items else [[item] for item in items]
            for batch in batches:
                await self._submit_batch(order, adapter, batch, result)

        result.success = not result.errors

        if result.provider_orders:
            try:
                await self.aggregator.recompute_order_status(order_id, fresh_submission=True)
            except FulfilmentServiceError as e:
                logger.error(f"Could not update status of order {order_id} after routing: {e}")

        if partitions:
            await publish_order_routed(self.event_bus, order_id, result)

        logger.info(
            f"Routed order {order_id}: {len(result.provider_orders)} provider orders, "
            f"{len(result.errors)} item errors"
        )
        return result

    async def _submit_batch(
        self,
        order: Order,
        adapter: ProviderAdapter,
        batch: List[OrderItem],
        result: RoutingResult,
    ) -> None:
        provider = adapter.provider
        try:
            context = await self._build_context(provider, order, batch)
            submission = await adapter.submit_order(order, batch, context)
        except Exception as e:
            message = _error_text(e)
            logger.error(
                f"{provider.value} submission failed for order {order.order_id} "
                f"items {[item.item_id for item in batch]}: {message}"
            )
            for item in batch:
                await self._mark_failed(item)
                result.errors.append(RoutingError(item_id=item.item_id, provider=provider, error=message))
            return

        # The provider order exists from here on; failures are reported, not raised
        for item in batch:
            try:
                updated = await self.repository.update_item_fulfilment(
                    item.item_id,
                    FulfilmentStatus.PENDING,
                    FulfilmentStatus.SENT,
                    fulfilment_order_id=submission.provider_order_id,
                )
            except Exception as e:
                message = _error_text(e)
                logger.error(
                    f"{provider.value} order {submission.provider_order_id} created but item "
                    f"{item.item_id} could not be marked sent: {message}"
                )
                result.errors.append(
                    RoutingError(
                        item_id=item.item_id,
                        provider=provider,
                        error=f"{provider.value} order {submission.provider_order_id} not stored: {message}",
                    )
                )
                continue
            if not updated:
                logger.warning(
                    f"Item {item.item_id} changed while submitting {provider.value} order "
                    f"{submission.provider_order_id}"
                )

        await self._record_submission(batch[0], submission)
        result.provider_orders.append(
            ProviderOrder(
                provider=provider,
                provider_order_id=submission.provider_order_id,
                item_ids=[item.item_id for item in batch],
            )
        )

    async def _build_context(
        self,
        provider: FulfilmentProvider,
        order: Order,
        items: List[OrderItem],
    ) -> Optional[SubmissionContext]:
        builder = self._context_builders.get(provider)
        if builder is None:
            return None
        return await builder(order, items)

    async def _storybook_context(self, order: Order, items: List[OrderItem]) -> SubmissionContext:
        """Load the storybook and render its PDF once"""
        item = items[0]
        if not item.storybook_id:
            raise FulfilmentValidationError(f"Storybook configuration not found for item {item.item_id}")

        storybook = await self.repository.get_storybook(item.storybook_id)
        if storybook is None:
            raise StorybookNotFoundError(f"Storybook not found: {item.storybook_id}")

        pdf_url = storybook.pdf_url
        if not pdf_url:
            if self.document_client is None:
                raise FulfilmentValidationError(f"Storybook PDF not available for item {item.item_id}")
            pdf_url = await self.document_client.render_storybook_pdf(storybook)
            await self.repository.set_storybook_pdf_url(storybook.storybook_id, pdf_url)
            storybook = storybook.model_copy(update={"pdf_url": pdf_url})
            logger.info(f"Rendered PDF for storybook {storybook.storybook_id}")

        return SubmissionContext(storybook=storybook, document_url=pdf_url)

    async def _mark_failed(self, item: OrderItem) -> None:
        try:
            updated = await self.repository.update_item_fulfilment(
                item.item_id, item.fulfilment_status, FulfilmentStatus.FAILED
            )
            if not updated:
                logger.warning(f"Item {item.item_id} changed before it could be marked failed")
        except Exception as e:
            logger.error(f"Failed to mark item {item.item_id} failed: {e}")

    async def _record_submission(self, item: OrderItem, submission: ProviderSubmission) -> None:
        try:
            await self.repository.record_event(
                order_item_id=item.item_id,
                provider=submission.provider,
                event_type=ORDER_CREATED_EVENT,
                payload=json.dumps(submission.raw_response, default=str),
                dedupe_key=order_created_dedupe_key(submission.provider, submission.provider_order_id),
                processed=True,
            )
        except Exception as e:
            logger.error(
                f"Failed to log {submission.provider.value} order {submission.provider_order_id} "
                f"for item {item.item_id}: {e}"
            )

    async def retry_item(self, item_id: str) -> bool:
        """
        Resubmit one failed item through its provider.

        Returns False when the provider rejects the retry.

        Raises:
            OrderItemNotFoundError: item does not exist
            InvalidFulfilmentStateError: item is not failed
            ProviderNotConfiguredError: provider has no credentials
        """
        item = await self.repository.get_order_item(item_id)
        if item is None:
            raise OrderItemNotFoundError(f"Order item not found: {item_id}")
        if item.fulfilment_status != FulfilmentStatus.FAILED:
            raise InvalidFulfilmentStateError(
                f"Only failed items can be retried; item {item_id} is {item.fulfilment_status.value}"
            )

        order = await self.repository.get_order(item.order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {item.order_id}")

        adapter = self._adapter(item.fulfilment_provider)
        try:
            context = await self._build_context(adapter.provider, order, [item])
            submission = await adapter.submit_order(order, [item], context)
        except Exception as e:
            logger.error(f"Retry of item {item_id} via {adapter.provider.value} failed: {_error_text(e)}")
            return False

        updated = await self.repository.update_item_fulfilment(
            item_id,
            FulfilmentStatus.FAILED,
            FulfilmentStatus.SENT,
            fulfilment_order_id=submission.provider_order_id,
        )
        await self._record_submission(item, submission)
        if not updated:
            logger.error(
                f"Item {item_id} changed during retry; {adapter.provider.value} order "
                f"{submission.provider_order_id} needs manual review"
            )
            return False

        try:
            await self.aggregator.recompute_order_status(item.order_id, fresh_submission=True)
        except FulfilmentServiceError as e:
            logger.error(f"Could not update status of order {item.order_id} after retry: {e}")

        logger.info(f"Retried item {item_id}: {adapter.provider.value} order {submission.provider_order_id}")
        return True
