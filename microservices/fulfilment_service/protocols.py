"""
Fulfilment Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, List, Optional, Protocol, Tuple, runtime_checkable

# Import only models (no I/O dependencies)
from .models import (
    FulfilmentEvent,
    FulfilmentProvider,
    FulfilmentStatus,
    Order,
    OrderItem,
    OrderStatus,
    StorybookProject,
)


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class FulfilmentServiceError(Exception):
    """Base exception for fulfilment service errors"""
    pass


class FulfilmentNotFoundError(FulfilmentServiceError):
    """Referenced record does not exist"""
    pass


class OrderNotFoundError(FulfilmentNotFoundError):
    """Order not found error"""
    pass


class OrderItemNotFoundError(FulfilmentNotFoundError):
    """Order item not found error"""
    pass


class StorybookNotFoundError(FulfilmentNotFoundError):
    """Storybook composition not found"""
    pass


class ProviderNotConfiguredError(FulfilmentServiceError):
    """Provider credentials are missing"""

    def __init__(self, provider: FulfilmentProvider, detail: str = "API key"):
        self.provider = provider
        super().__init__(f"{provider.value} is not configured: missing {detail}")


class ProviderError(FulfilmentServiceError):
    """Provider rejected a request or could not be reached"""

    def __init__(self, provider: FulfilmentProvider, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class FulfilmentValidationError(FulfilmentServiceError):
    """Product precondition missing"""
    pass


class InvalidFulfilmentStateError(FulfilmentServiceError):
    """Invalid item state transition"""
    pass


class WebhookPayloadError(FulfilmentServiceError):
    """Webhook body could not be understood"""
    pass


class ConcurrentUpdateError(FulfilmentServiceError):
    """Compare-and-set write kept losing to concurrent writers"""
    pass


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class FulfilmentRepositoryProtocol(Protocol):
    """
    Interface for Fulfilment Repository.

    Status writes are compare-and-set: they succeed only while the row still
    holds ``expected_status`` and return False otherwise.
    """

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order with its items"""
        ...

    async def find_order_by_fulfilment_order_id(
        self,
        provider: FulfilmentProvider,
        fulfilment_order_id: str
    ) -> Optional[Order]:
        """Reverse lookup by the provider's own order id"""
        ...

    async def get_order_item(self, item_id: str) -> Optional[OrderItem]:
        """Get single order item"""
        ...

    async def update_item_fulfilment(
        self,
        item_id: str,
        expected_status: FulfilmentStatus,
        new_status: FulfilmentStatus,
        fulfilment_order_id: Optional[str] = None,
        tracking_number: Optional[str] = None,
        tracking_url: Optional[str] = None
    ) -> bool:
        """Compare-and-set item status; non-null optional fields are written too"""
        ...

    async def update_order_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus
    ) -> bool:
        """Compare-and-set order status"""
        ...

    async def get_storybook(self, storybook_id: str) -> Optional[StorybookProject]:
        """Get storybook composition"""
        ...

    async def set_storybook_pdf_url(self, storybook_id: str, pdf_url: str) -> bool:
        """Persist rendered document URL"""
        ...

    async def record_event(
        self,
        order_item_id: str,
        provider: FulfilmentProvider,
        event_type: str,
        payload: str,
        dedupe_key: str,
        processed: bool = False
    ) -> Tuple[FulfilmentEvent, bool]:
        """Insert event or return the existing one for dedupe_key; flag is True when inserted"""
        ...

    async def mark_event_processed(self, event_id: str) -> bool:
        """Flip processed false -> true; only one caller gets True"""
        ...

    async def get_item_events(self, order_item_id: str) -> List[FulfilmentEvent]:
        """Events for an item, oldest first"""
        ...


# ============================================================================
# Event Bus Protocol
# ============================================================================

@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus - no I/O imports"""

    async def publish_event(self, event: Any) -> None:
        """Publish an event"""
        ...


# ============================================================================
# Client Protocols
# ============================================================================

@runtime_checkable
class NotificationClientProtocol(Protocol):
    """Interface for Notification Service Client"""

    async def send_shipping_notification(
        self,
        order_id: str,
        tracking_number: Optional[str],
        tracking_url: Optional[str],
        carrier: Optional[str]
    ) -> bool:
        """Send shipping email"""
        ...


@runtime_checkable
class DocumentClientProtocol(Protocol):
    """Interface for Document Service Client"""

    async def render_storybook_pdf(self, storybook: StorybookProject) -> str:
        """Render storybook and return a durable PDF URL"""
        ...
