"""
Fulfilment Service Data Contract

Canonical test data for fulfilment service testing: orders, items,
storybooks and provider webhook payloads.

This is the SINGLE SOURCE OF TRUTH for fulfilment service test data.
Zero hardcoded data - all test data generated through factory methods.
"""

import hashlib
import hmac
import json
import random
import secrets
import time
import uuid
from typing import Any, Dict, List, Optional

from microservices.fulfilment_service.models import (
    FulfilmentProvider,
    FulfilmentStatus,
    Order,
    OrderItem,
    OrderStatus,
    ShippingAddress,
    StorybookProject,
)


class FulfilmentTestDataFactory:
    """
    Test data factory for fulfilment_service - zero hardcoded data.

    All factory methods generate unique, random data suitable for testing.
    """

    # === ID Generators ===

    @staticmethod
    def make_order_id() -> str:
        """Generate valid order ID"""
        return f"ord_{uuid.uuid4().hex[:12]}"

    @staticmethod
    def make_item_id() -> str:
        """Generate valid order item ID"""
        return f"itm_{uuid.uuid4().hex[:12]}"

    @staticmethod
    def make_storybook_id() -> str:
        """Generate valid storybook ID"""
        return f"sb_{uuid.uuid4().hex[:12]}"

    @staticmethod
    def make_order_number() -> str:
        return f"PK-{random.randint(100000, 999999)}"

    @staticmethod
    def make_printful_order_id() -> str:
        """Printful order ids are integers"""
        return str(random.randint(10_000_000, 99_999_999))

    @staticmethod
    def make_blurb_order_id() -> str:
        return f"BLB-{uuid.uuid4().hex[:10].upper()}"

    @staticmethod
    def make_tracking_number() -> str:
        return f"RN{random.randint(100000000, 999999999)}GB"

    @staticmethod
    def make_secret() -> str:
        return secrets.token_hex(16)

    # === Domain objects ===

    @staticmethod
    def make_address(**overrides) -> ShippingAddress:
        data = {
            "full_name": f"Customer {secrets.token_hex(3)}",
            "address_line1": f"{random.randint(1, 200)} High Street",
            "address_line2": None,
            "city": "Manchester",
            "postcode": "M1 1AA",
            "country_code": "GB",
            "phone": None,
        }
        data.update(overrides)
        return ShippingAddress(**data)

    @staticmethod
    def make_item(
        order_id: str,
        provider: FulfilmentProvider = FulfilmentProvider.PRINTFUL,
        **overrides
    ) -> OrderItem:
        """Line item pinned to a provider, ready for routing"""
        quantity = overrides.pop("quantity", 1)
        unit_price = overrides.pop("unit_price_pence", random.randint(999, 2999))
        data: Dict[str, Any] = {
            "item_id": FulfilmentTestDataFactory.make_item_id(),
            "order_id": order_id,
            "quantity": quantity,
            "unit_price_pence": unit_price,
            "total_price_pence": unit_price * quantity,
            "fulfilment_provider": provider,
        }
        if provider == FulfilmentProvider.PRINTFUL:
            data.update({
                "product_name": "Personalised Mug",
                "variant_name": "11oz White",
                "variant_external_id": str(random.randint(1000, 9999)),
                "asset_url": f"https://cdn.example.com/assets/{uuid.uuid4().hex}.png",
            })
        else:
            data.update({
                "product_name": "Storybook",
                "variant_name": "Hardcover A4",
                "storybook_id": FulfilmentTestDataFactory.make_storybook_id(),
            })
        data.update(overrides)
        return OrderItem(**data)

    @staticmethod
    def make_order(
        items: Optional[List[OrderItem]] = None,
        status: OrderStatus = OrderStatus.PAID,
        order_id: Optional[str] = None,
        **overrides
    ) -> Order:
        order_id = order_id or FulfilmentTestDataFactory.make_order_id()
        if items is None:
            items = [FulfilmentTestDataFactory.make_item(order_id)]
        items = [item.model_copy(update={"order_id": order_id}) for item in items]
        subtotal = sum(item.total_price_pence for item in items)
        data: Dict[str, Any] = {
            "order_id": order_id,
            "order_number": FulfilmentTestDataFactory.make_order_number(),
            "status": status,
            "subtotal_pence": subtotal,
            "shipping_pence": 399,
            "total_pence": subtotal + 399,
            "currency": "GBP",
            "customer_email": f"customer_{secrets.token_hex(4)}@example.com",
            "customer_name": "Test Customer",
            "shipping_address": FulfilmentTestDataFactory.make_address(),
            "tracking_token": secrets.token_urlsafe(16),
            "items": items,
        }
        data.update(overrides)
        return Order(**data)

    @staticmethod
    def make_mixed_order(status: OrderStatus = OrderStatus.PAID) -> Order:
        """One Printful item and one Blurb storybook item"""
        order_id = FulfilmentTestDataFactory.make_order_id()
        return FulfilmentTestDataFactory.make_order(
            order_id=order_id,
            status=status,
            items=[
                FulfilmentTestDataFactory.make_item(order_id, FulfilmentProvider.PRINTFUL),
                FulfilmentTestDataFactory.make_item(order_id, FulfilmentProvider.BLURB),
            ],
        )

    @staticmethod
    def make_storybook(storybook_id: Optional[str] = None, **overrides) -> StorybookProject:
        data = {
            "storybook_id": storybook_id or FulfilmentTestDataFactory.make_storybook_id(),
            "title": f"{random.choice(['Amelia', 'Oliver', 'Isla'])} and the Moon",
            "child_name": "Amelia",
            "page_count": 24,
            "pdf_url": None,
        }
        data.update(overrides)
        return StorybookProject(**data)

    @staticmethod
    def sent(item: OrderItem, provider_order_id: str) -> OrderItem:
        """Item as it looks after a successful submission"""
        return item.model_copy(update={
            "fulfilment_status": FulfilmentStatus.SENT,
            "fulfilment_order_id": provider_order_id,
        })

    # === Printful webhooks ===

    @staticmethod
    def make_printful_webhook(
        event_type: str,
        printful_order_id: str,
        external_id: Optional[str] = None,
        status: str = "fulfilled",
        tracking_number: Optional[str] = None,
        retries: int = 0,
        error: Optional[str] = None,
    ) -> Dict[str, Any]:
        order: Dict[str, Any] = {
            "id": int(printful_order_id),
            "external_id": external_id,
            "status": status,
        }
        if error:
            order["error"] = error
        if tracking_number:
            order["shipments"] = [{
                "carrier": "Royal Mail",
                "service": "Tracked 48",
                "tracking_number": tracking_number,
                "tracking_url": f"https://track.example.com/{tracking_number}",
                "ship_date": "2024-05-01",
            }]
        return {
            "type": event_type,
            "created": 1714550400,
            "retries": retries,
            "store": 123456,
            "data": {"order": order},
        }

    @staticmethod
    def sign_printful(body: bytes, secret: str) -> str:
        return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

    # === Blurb webhooks ===

    @staticmethod
    def make_blurb_webhook(
        event: str,
        blurb_order_id: str,
        external_id: Optional[str] = None,
        status: str = "shipped",
        tracking_number: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "event": event,
            "order_id": blurb_order_id,
            "status": status,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        if external_id:
            payload["external_id"] = external_id
        if tracking_number:
            payload["tracking"] = {
                "carrier": "DPD",
                "tracking_number": tracking_number,
                "tracking_url": f"https://track.example.com/{tracking_number}",
            }
        if error_message:
            payload["error_message"] = error_message
        return payload

    @staticmethod
    def encode(payload: Dict[str, Any]) -> bytes:
        return json.dumps(payload).encode()
