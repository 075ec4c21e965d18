"""
Blurb Fulfilment Provider

Printed storybooks. One Blurb order carries one book, built from the
storybook's rendered PDF. Webhooks present a shared bearer token in the
Authorization header.
"""

import hmac
import logging
from typing import Any, Dict, List, Optional

from ..models import (
    FulfilmentProvider,
    FulfilmentStatus,
    Order,
    OrderItem,
    ProviderSubmission,
    ProviderWebhookEvent,
    WebhookEventKind,
)
from ..protocols import FulfilmentValidationError, ProviderError, WebhookPayloadError
from .base import (
    ProviderAdapter,
    RawPayload,
    SubmissionContext,
    canonical_hash,
    load_payload,
    payload_text,
)

logger = logging.getLogger(__name__)


class BlurbProvider(ProviderAdapter):
    """Blurb order and webhook adapter."""

    API_BASE = "https://api.blurb.com/v1"

    STATUS_MAP = {
        "pending": FulfilmentStatus.PENDING,
        "processing": FulfilmentStatus.SENT,
        "printing": FulfilmentStatus.SENT,
        "shipped": FulfilmentStatus.FULFILLED,
        "delivered": FulfilmentStatus.FULFILLED,
        "failed": FulfilmentStatus.FAILED,
        "cancelled": FulfilmentStatus.FAILED,
    }

    EVENT_KINDS = {
        "order.shipped": WebhookEventKind.SHIPPED,
        "order.delivered": WebhookEventKind.DELIVERED,
        "order.failed": WebhookEventKind.FAILED,
        "order.updated": WebhookEventKind.UPDATED,
        "order.cancelled": WebhookEventKind.CANCELLED,
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        api_url: str = API_BASE,
        timeout: float = 30.0,
        http_client: Optional[Any] = None,
    ):
        super().__init__(api_key, webhook_secret, api_url, timeout, http_client)

    @property
    def provider(self) -> FulfilmentProvider:
        return FulfilmentProvider.BLURB

    @property
    def batches_items(self) -> bool:
        return False

    def error_message(self, body: Dict[str, Any]) -> str:
        message = body.get("message")
        return str(message) if message else "Blurb API error"

    @staticmethod
    def binding_for(item: OrderItem) -> str:
        variant = (item.variant_name or "").lower()
        return "hardcover" if "hardcover" in variant else "softcover"

    def build_order_payload(self, order: Order, item: OrderItem, context: SubmissionContext) -> Dict[str, Any]:
        address = order.shipping_address
        shipping = {
            "name": address.full_name,
            "address1": address.address_line1,
            "city": address.city,
            "postcode": address.postcode,
            "country": address.country_code,
            "email": order.customer_email,
        }
        if address.address_line2:
            shipping["address2"] = address.address_line2
        if address.phone:
            shipping["phone"] = address.phone

        return {
            "external_reference": order.order_id,
            "book": {
                "pdf_url": context.document_url,
                "title": context.storybook.title,
                "binding": self.binding_for(item),
                "paper_type": "standard",
                "quantity": item.quantity,
            },
            "shipping": shipping,
            "shipping_method": "standard",
        }

    async def submit_order(
        self,
        order: Order,
        items: List[OrderItem],
        context: Optional[SubmissionContext] = None,
    ) -> ProviderSubmission:
        self.ensure_configured()
        if len(items) != 1:
            raise FulfilmentValidationError("Blurb orders carry exactly one storybook")
        item = items[0]
        if context is None or context.storybook is None:
            raise FulfilmentValidationError(f"Storybook configuration not found for item {item.item_id}")
        if not context.document_url:
            raise FulfilmentValidationError(f"Storybook PDF not available for item {item.item_id}")

        body = await self._post("/orders", self.build_order_payload(order, item, context))
        blurb_order_id = body.get("order_id")
        if not blurb_order_id:
            raise ProviderError(self.provider, self.error_message(body))

        logger.info(f"Created Blurb order {blurb_order_id} for item {item.item_id}")
        return ProviderSubmission(
            provider=self.provider,
            provider_order_id=str(blurb_order_id),
            raw_response=body,
        )

    def verify_webhook(self, raw_payload: RawPayload, credential: Optional[str]) -> bool:
        secret = self._webhook_secret()
        if not credential:
            return False

        scheme, _, token = credential.strip().partition(" ")
        if scheme.lower() != "bearer" or not token:
            return False
        return hmac.compare_digest(token.strip().encode("utf-8"), secret.encode("utf-8"))

    def parse_webhook(self, raw_payload: RawPayload) -> ProviderWebhookEvent:
        data = load_payload(raw_payload)

        event_type = data.get("event")
        if not isinstance(event_type, str) or not event_type:
            raise WebhookPayloadError("Blurb webhook missing event")
        if not data.get("order_id"):
            raise WebhookPayloadError("Blurb webhook missing order_id")

        tracking = data.get("tracking") if isinstance(data.get("tracking"), dict) else {}
        external_id = data.get("external_id") or data.get("external_reference")

        return ProviderWebhookEvent(
            provider=self.provider,
            event_type=event_type,
            kind=self.EVENT_KINDS.get(event_type, WebhookEventKind.UNKNOWN),
            provider_order_id=str(data["order_id"]),
            external_order_id=str(external_id) if external_id else None,
            provider_status=data.get("status"),
            tracking_number=tracking.get("tracking_number"),
            tracking_url=tracking.get("tracking_url"),
            carrier=tracking.get("carrier"),
            error_message=data.get("error_message"),
            dedupe_key=f"blurb:{canonical_hash(data)}",
            raw_payload=payload_text(raw_payload),
        )
