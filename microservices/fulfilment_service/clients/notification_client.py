"""
Notification Service Client for Fulfilment Service

Shipping confirmation emails. Best effort: failures are logged and reported
as False, never raised.
"""

import httpx
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


class NotificationClient:
    """Client for notification_service"""

    def __init__(self, base_url: Optional[str] = None, http_client: Optional[Any] = None):
        if base_url:
            self.base_url = base_url.rstrip('/')
        else:
            try:
                from core.service_discovery import get_service_discovery
                sd = get_service_discovery()
                self.base_url = sd.get_service_url("notification_service")
            except Exception as e:
                logger.warning(f"Service discovery failed, using default: {e}")
                self.base_url = "http://localhost:8206"

        self.client = http_client or httpx.AsyncClient(timeout=30.0)
        logger.info(f"NotificationClient initialized with base_url: {self.base_url}")

    async def close(self):
        if isinstance(self.client, httpx.AsyncClient):
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def send_shipping_notification(
        self,
        order_id: str,
        tracking_number: Optional[str],
        tracking_url: Optional[str],
        carrier: Optional[str]
    ) -> bool:
        """Ask the notification service to email the customer their tracking details"""
        try:
            payload = {
                "notification_type": "order_shipped",
                "template_id": "shipping_confirmation",
                "channels": ["email"],
                "priority": "normal",
                "reference_type": "order",
                "reference_id": order_id,
                "template_data": {
                    "order_id": order_id,
                    "tracking_number": tracking_number,
                    "tracking_url": tracking_url,
                    "carrier": carrier,
                },
            }
            response = await self.client.post(
                f"{self.base_url}/api/v1/notifications/send",
                json=payload
            )
            if response.status_code >= 400:
                logger.error(f"Failed to send shipping notification for order {order_id}: {response.status_code}")
                return False
            logger.info(f"Shipping notification queued for order {order_id}")
            return True
        except httpx.HTTPError as e:
            logger.error(f"Error sending shipping notification for order {order_id}: {e}")
            return False
