"""
Fulfilment Service Data Models

Orders, line items and the fulfilment event log, plus the normalised shapes
exchanged with print-on-demand providers.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FulfilmentProvider(str, Enum):
    """External print-on-demand provider"""
    PRINTFUL = "printful"
    BLURB = "blurb"


class FulfilmentStatus(str, Enum):
    """Per line item fulfilment lifecycle"""
    PENDING = "pending"
    SENT = "sent"
    FULFILLED = "fulfilled"
    FAILED = "failed"


class OrderStatus(str, Enum):
    """Overall order status"""
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class WebhookEventKind(str, Enum):
    """Provider webhook event, normalised across providers"""
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    FAILED = "failed"
    UPDATED = "updated"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class WebhookOutcome(str, Enum):
    """What the reconciler did with an inbound webhook"""
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    UNMATCHED = "unmatched"
    IGNORED = "ignored"
    ERROR = "error"


# Item transitions; FAILED -> SENT is only allowed through an operator retry
ITEM_TRANSITIONS: Dict[FulfilmentStatus, set] = {
    FulfilmentStatus.PENDING: {FulfilmentStatus.SENT, FulfilmentStatus.FAILED},
    FulfilmentStatus.SENT: {FulfilmentStatus.FULFILLED, FulfilmentStatus.FAILED},
    FulfilmentStatus.FULFILLED: set(),
    FulfilmentStatus.FAILED: set(),
}

TERMINAL_ITEM_STATUSES = {FulfilmentStatus.FULFILLED, FulfilmentStatus.FAILED}


def can_transition(
    current: FulfilmentStatus,
    target: FulfilmentStatus,
    allow_retry: bool = False,
) -> bool:
    """Whether an item may move from current to target"""
    if current == target:
        return True
    if allow_retry and current == FulfilmentStatus.FAILED and target == FulfilmentStatus.SENT:
        return True
    return target in ITEM_TRANSITIONS[current]


# Core Models

class ShippingAddress(BaseModel):
    """Postal address"""
    full_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    postcode: str
    country_code: str = "GB"
    phone: Optional[str] = None


class OrderItem(BaseModel):
    """One line item, pinned to a single provider at creation"""
    item_id: str
    order_id: str
    product_name: str
    variant_name: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    unit_price_pence: int = Field(default=0, ge=0)
    total_price_pence: int = Field(default=0, ge=0)
    fulfilment_provider: FulfilmentProvider
    fulfilment_order_id: Optional[str] = None
    fulfilment_status: FulfilmentStatus = FulfilmentStatus.PENDING
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None

    # Provider catalogue and product references
    variant_external_id: Optional[str] = None
    asset_url: Optional[str] = None
    storybook_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Order(BaseModel):
    """Customer order"""
    order_id: str
    order_number: str
    status: OrderStatus = OrderStatus.PAID
    subtotal_pence: int = Field(default=0, ge=0)
    shipping_pence: int = Field(default=0, ge=0)
    total_pence: int = Field(default=0, ge=0)
    currency: str = "GBP"
    customer_email: str
    customer_name: Optional[str] = None
    shipping_address: ShippingAddress
    billing_address: Optional[ShippingAddress] = None
    tracking_token: Optional[str] = None
    items: List[OrderItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StorybookProject(BaseModel):
    """Personalised storybook composition printed by Blurb"""
    storybook_id: str
    title: str
    child_name: Optional[str] = None
    page_count: int = Field(default=0, ge=0)
    pdf_url: Optional[str] = None
    updated_at: Optional[datetime] = None


class FulfilmentEvent(BaseModel):
    """Audit record of one provider interaction"""
    event_id: str
    order_item_id: str
    provider: FulfilmentProvider
    event_type: str
    payload: str
    dedupe_key: str
    processed: bool = False
    created_at: Optional[datetime] = None

    def payload_data(self) -> Any:
        """Parse the stored payload; invalid JSON comes back as the raw string"""
        try:
            return json.loads(self.payload)
        except (TypeError, ValueError):
            return self.payload


# Provider exchange models

class ProviderSubmission(BaseModel):
    """Result of a successful provider order creation"""
    provider: FulfilmentProvider
    provider_order_id: str
    raw_response: Dict[str, Any] = Field(default_factory=dict)


class ProviderWebhookEvent(BaseModel):
    """Inbound provider notification, normalised"""
    provider: FulfilmentProvider
    event_type: str
    kind: WebhookEventKind = WebhookEventKind.UNKNOWN
    provider_order_id: Optional[str] = None
    external_order_id: Optional[str] = None
    provider_status: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    carrier: Optional[str] = None
    error_message: Optional[str] = None
    dedupe_key: str
    raw_payload: str


# Routing results

class ProviderOrder(BaseModel):
    """One successful provider submission"""
    provider: FulfilmentProvider
    provider_order_id: str
    item_ids: List[str] = Field(default_factory=list)


class RoutingError(BaseModel):
    """One line item that could not be submitted"""
    item_id: str
    provider: FulfilmentProvider
    error: str


class RoutingResult(BaseModel):
    """Outcome of routing an order to its providers"""
    success: bool = True
    provider_orders: List[ProviderOrder] = Field(default_factory=list)
    errors: List[RoutingError] = Field(default_factory=list)


class ItemFulfilmentSummary(BaseModel):
    """Per item view used by the status endpoint"""
    item_id: str
    provider: FulfilmentProvider
    status: FulfilmentStatus
    fulfilment_order_id: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None


class OrderFulfilmentStatus(BaseModel):
    """Fulfilment summary across an order's items"""
    order_id: str
    order_status: OrderStatus
    all_pending: bool
    all_sent: bool
    all_fulfilled: bool
    has_failed: bool
    items: List[ItemFulfilmentSummary] = Field(default_factory=list)


# Response Models

class WebhookResponse(BaseModel):
    """Acknowledgement returned to the provider"""
    received: bool = True
    outcome: WebhookOutcome


class RetryResponse(BaseModel):
    """Operator retry result"""
    item_id: str
    success: bool


class ProviderInfo(BaseModel):
    """Provider availability"""
    provider: FulfilmentProvider
    configured: bool
    webhook_configured: bool


class ProvidersResponse(BaseModel):
    """Provider availability list"""
    providers: List[ProviderInfo]


class WebhookReceipt(BaseModel):
    """Result of authenticating and processing one webhook delivery"""
    authenticated: bool
    outcome: Optional[WebhookOutcome] = None
