"""
Printful Fulfilment Provider

Print-on-demand merchandise (mugs, apparel, prints, posters).
https://developers.printful.com/docs/

Orders are created as drafts and confirmed into production straight away
unless auto-confirm is disabled. Webhooks are signed with a hex HMAC-SHA256
of the raw body, sent in the X-Printful-Signature header.
"""

import hashlib
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
    pence_to_decimal_string,
)

logger = logging.getLogger(__name__)


class PrintfulProvider(ProviderAdapter):
    """
    Printful order and webhook adapter.

    Usage:
        provider = PrintfulProvider(api_key="...", webhook_secret="...")
        submission = await provider.submit_order(order, items)
    """

    API_BASE = "https://api.printful.com"

    STATUS_MAP = {
        "draft": FulfilmentStatus.PENDING,
        "pending": FulfilmentStatus.SENT,
        "failed": FulfilmentStatus.FAILED,
        "canceled": FulfilmentStatus.FAILED,
        "cancelled": FulfilmentStatus.FAILED,
        "inprocess": FulfilmentStatus.SENT,
        "onhold": FulfilmentStatus.SENT,
        "partial": FulfilmentStatus.SENT,
        "fulfilled": FulfilmentStatus.FULFILLED,
    }

    EVENT_KINDS = {
        "package_shipped": WebhookEventKind.SHIPPED,
        "order_failed": WebhookEventKind.FAILED,
        "order_updated": WebhookEventKind.UPDATED,
        "order_canceled": WebhookEventKind.CANCELLED,
        "order_cancelled": WebhookEventKind.CANCELLED,
    }

    # Delivery counter, incremented by Printful on every redelivery
    REDELIVERY_FIELDS = ("retries",)

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        api_url: str = API_BASE,
        auto_confirm: bool = True,
        timeout: float = 30.0,
        http_client: Optional[Any] = None,
    ):
        super().__init__(api_key, webhook_secret, api_url, timeout, http_client)
        self.auto_confirm = auto_confirm

    @property
    def provider(self) -> FulfilmentProvider:
        return FulfilmentProvider.PRINTFUL

    def error_message(self, body: Dict[str, Any]) -> str:
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        result = body.get("result")
        if isinstance(result, str) and result:
            return result
        return "Printful API error"

    def build_order_payload(self, order: Order, items: List[OrderItem]) -> Dict[str, Any]:
        address = order.shipping_address
        recipient = {
            "name": address.full_name,
            "address1": address.address_line1,
            "city": address.city,
            "country_code": address.country_code,
            "zip": address.postcode,
            "email": order.customer_email,
        }
        if address.address_line2:
            recipient["address2"] = address.address_line2
        if address.phone:
            recipient["phone"] = address.phone

        line_items = []
        for item in items:
            if not item.variant_external_id:
                raise FulfilmentValidationError(f"Printful variant not configured for item {item.item_id}")
            if not item.asset_url:
                raise FulfilmentValidationError(f"Print file not found for item {item.item_id}")
            variant_id = item.variant_external_id
            line_items.append({
                "external_id": item.item_id,
                "variant_id": int(variant_id) if variant_id.isdigit() else variant_id,
                "quantity": item.quantity,
                "files": [{"type": "default", "url": item.asset_url}],
            })

        return {
            "external_id": order.order_id,
            "recipient": recipient,
            "items": line_items,
            "retail_costs": {
                "currency": order.currency,
                "subtotal": pence_to_decimal_string(order.subtotal_pence),
                "shipping": pence_to_decimal_string(order.shipping_pence),
                "tax": "0.00",
            },
        }

    def _result(self, body: Dict[str, Any]) -> Any:
        """Unwrap the {code, result, error} envelope"""
        error = body.get("error")
        if error:
            raise ProviderError(self.provider, self.error_message(body), status_code=body.get("code"))
        return body.get("result")

    async def submit_order(
        self,
        order: Order,
        items: List[OrderItem],
        context: Optional[SubmissionContext] = None,
    ) -> ProviderSubmission:
        self.ensure_configured()
        payload = self.build_order_payload(order, items)

        result = self._result(await self._post("/orders", payload))
        if not isinstance(result, dict) or result.get("id") is None:
            raise ProviderError(self.provider, "Printful response did not include an order id")
        printful_order_id = str(result["id"])
        logger.info(f"Created Printful order {printful_order_id} for order {order.order_id}")

        if self.auto_confirm:
            await self.confirm_order(printful_order_id)

        return ProviderSubmission(
            provider=self.provider,
            provider_order_id=printful_order_id,
            raw_response=result,
        )

    async def confirm_order(self, printful_order_id: str) -> None:
        """Move a draft order into production"""
        self.ensure_configured()
        self._result(await self._post(f"/orders/{printful_order_id}/confirm"))
        logger.info(f"Confirmed Printful order {printful_order_id}")

    def verify_webhook(self, raw_payload: RawPayload, credential: Optional[str]) -> bool:
        secret = self._webhook_secret()
        if not credential:
            return False

        body = raw_payload if isinstance(raw_payload, bytes) else raw_payload.encode("utf-8")
        expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(credential.strip().encode("utf-8"), expected.encode("utf-8"))

    def parse_webhook(self, raw_payload: RawPayload) -> ProviderWebhookEvent:
        data = load_payload(raw_payload)

        event_type = data.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise WebhookPayloadError("Printful webhook missing event type")

        body = data.get("data")
        order = body.get("order") if isinstance(body, dict) else None
        if not isinstance(order, dict) or order.get("id") is None:
            raise WebhookPayloadError("Printful webhook missing data.order.id")

        shipment: Dict[str, Any] = {}
        shipments = order.get("shipments") or (body.get("shipment") and [body["shipment"]]) or []
        if shipments and isinstance(shipments[0], dict):
            shipment = shipments[0]

        dedupe_source = {k: v for k, v in data.items() if k not in self.REDELIVERY_FIELDS}
        external_id = order.get("external_id")

        return ProviderWebhookEvent(
            provider=self.provider,
            event_type=event_type,
            kind=self.EVENT_KINDS.get(event_type, WebhookEventKind.UNKNOWN),
            provider_order_id=str(order["id"]),
            external_order_id=str(external_id) if external_id else None,
            provider_status=order.get("status"),
            tracking_number=shipment.get("tracking_number"),
            tracking_url=shipment.get("tracking_url"),
            carrier=shipment.get("carrier"),
            error_message=order.get("error") or data.get("reason"),
            dedupe_key=f"printful:{canonical_hash(dedupe_source)}",
            raw_payload=payload_text(raw_payload),
        )
