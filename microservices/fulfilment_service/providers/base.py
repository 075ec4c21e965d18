"""Fulfilment provider interface."""

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

import httpx

from ..models import (
    FulfilmentProvider,
    FulfilmentStatus,
    Order,
    OrderItem,
    ProviderSubmission,
    ProviderWebhookEvent,
    StorybookProject,
)
from ..protocols import ProviderError, ProviderNotConfiguredError, WebhookPayloadError

logger = logging.getLogger(__name__)

RawPayload = Union[str, bytes]


@dataclass
class SubmissionContext:
    """Product data a provider needs beyond the order itself"""
    storybook: Optional[StorybookProject] = None
    document_url: Optional[str] = None


def pence_to_decimal_string(pence: int) -> str:
    """1299 -> '12.99'"""
    return str((Decimal(pence) / 100).quantize(Decimal("0.01")))


def payload_text(raw_payload: RawPayload) -> str:
    if isinstance(raw_payload, bytes):
        return raw_payload.decode("utf-8")
    return raw_payload


def load_payload(raw_payload: RawPayload) -> Dict[str, Any]:
    """Decode a webhook body into a JSON object"""
    try:
        data = json.loads(payload_text(raw_payload))
    except (UnicodeDecodeError, ValueError) as e:
        raise WebhookPayloadError(f"Webhook body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")
    return data


def canonical_hash(data: Dict[str, Any]) -> str:
    """SHA-256 of canonical JSON (sorted keys, no whitespace)"""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ProviderAdapter(ABC):
    """Abstract fulfilment provider."""

    STATUS_MAP: Dict[str, FulfilmentStatus] = {}

    def __init__(
        self,
        api_key: Optional[str],
        webhook_secret: Optional[str],
        api_url: str,
        timeout: float = 30.0,
        http_client: Optional[Any] = None,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client

        if not self.api_key:
            logger.warning(f"{self.provider.value} API key not configured - integration disabled")

    @property
    @abstractmethod
    def provider(self) -> FulfilmentProvider:
        """Provider this adapter talks to"""
        raise NotImplementedError

    @property
    def batches_items(self) -> bool:
        """Whether one provider order can carry several line items"""
        return True

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def webhook_configured(self) -> bool:
        return bool(self.webhook_secret)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy HTTP client initialization"""
        if self._client is None or getattr(self._client, "is_closed", False):
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        return self._client

    async def close(self):
        """Close HTTP client"""
        if isinstance(self._client, httpx.AsyncClient) and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def ensure_configured(self):
        if not self.is_configured:
            raise ProviderNotConfiguredError(self.provider)

    def _webhook_secret(self) -> str:
        if not self.webhook_secret:
            raise ProviderNotConfiguredError(self.provider, "webhook secret")
        return self.webhook_secret

    async def _post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        POST to the provider and return the decoded body.

        Raises ProviderError on transport failure or a non-2xx status,
        with the provider's own message when it sent one.
        """
        try:
            if payload is None:
                response = await self.client.post(path)
            else:
                response = await self.client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"{self.provider.value} request to {path} failed: {e}")
            raise ProviderError(self.provider, f"{self.provider.value} request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code >= 400:
            message = self.error_message(body)
            logger.error(f"{self.provider.value} API error ({response.status_code}) on {path}: {message}")
            raise ProviderError(self.provider, message, status_code=response.status_code)

        return body

    def map_status(self, provider_status: Optional[str]) -> FulfilmentStatus:
        """Translate provider status; unknown values are treated as still in progress"""
        if not provider_status:
            return FulfilmentStatus.SENT
        return self.STATUS_MAP.get(provider_status.lower(), FulfilmentStatus.SENT)

    @abstractmethod
    def error_message(self, body: Dict[str, Any]) -> str:
        """Extract the provider's error message from an error response"""
        raise NotImplementedError

    @abstractmethod
    async def submit_order(
        self,
        order: Order,
        items: List[OrderItem],
        context: Optional[SubmissionContext] = None,
    ) -> ProviderSubmission:
        """Create a provider order for the given items."""
        raise NotImplementedError

    @abstractmethod
    def verify_webhook(self, raw_payload: RawPayload, credential: Optional[str]) -> bool:
        """Check webhook authenticity in constant time."""
        raise NotImplementedError

    @abstractmethod
    def parse_webhook(self, raw_payload: RawPayload) -> ProviderWebhookEvent:
        """Normalise a webhook body; raises WebhookPayloadError."""
        raise NotImplementedError
