"""
Fulfilment Microservice

Responsibilities:
- Route paid orders to print-on-demand providers (Printful, Blurb)
- Receive and authenticate provider webhooks
- Reconcile provider events into item and order status
- Operator retry of failed items
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Path, Request, status

from core.config_manager import ConfigManager
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from .events.handlers import get_event_handlers
from .factory import create_fulfilment_service
from .fulfilment_service import FulfilmentService
from .models import (
    FulfilmentProvider,
    OrderFulfilmentStatus,
    ProvidersResponse,
    RetryResponse,
    RoutingResult,
    WebhookResponse,
)
from .protocols import (
    FulfilmentNotFoundError,
    FulfilmentServiceError,
    FulfilmentValidationError,
    InvalidFulfilmentStateError,
    ProviderNotConfiguredError,
)
from .routes_registry import SERVICE_METADATA, get_route_summary

# Initialize configuration
config_manager = ConfigManager("fulfilment_service")
config = config_manager.get_service_config()

# Setup loggers (use actual service name)
logger = setup_service_logger("fulfilment_service")


class FulfilmentMicroservice:
    """Fulfilment microservice core class"""

    def __init__(self):
        self.fulfilment_service: Optional[FulfilmentService] = None
        self.event_bus = None

    async def initialize(self, event_bus=None):
        """Initialize the microservice"""
        try:
            self.event_bus = event_bus
            self.fulfilment_service = create_fulfilment_service(config=config_manager, event_bus=event_bus)

            for info in self.fulfilment_service.get_available_providers():
                if not info.configured:
                    logger.warning(f"{info.provider.value} API key not set - provider disabled")
                if not info.webhook_configured:
                    logger.warning(f"{info.provider.value} webhook secret not set - webhooks will be refused")

            logger.info("Fulfilment microservice initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize fulfilment microservice: {e}")
            raise

    async def shutdown(self):
        """Shutdown the microservice"""
        try:
            if self.fulfilment_service:
                await self.fulfilment_service.close()
            if self.event_bus:
                await self.event_bus.close()
                logger.info("Event bus closed")
            logger.info("Fulfilment microservice shutdown completed")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")


# Global microservice instance
fulfilment_microservice = FulfilmentMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    event_bus = None
    if config_manager.settings.infra.nats_enabled:
        try:
            event_bus = await get_event_bus("fulfilment_service", config=config_manager)
            logger.info("Event bus initialized successfully")
        except Exception as e:
            logger.warning(f"Failed to initialize event bus: {e}. Continuing without event publishing.")
            event_bus = None

    await fulfilment_microservice.initialize(event_bus=event_bus)

    repository = fulfilment_microservice.fulfilment_service.repository
    try:
        await repository.ensure_schema()
    except Exception as e:
        logger.warning(f"Could not apply fulfilment schema: {e}")

    if event_bus:
        try:
            handlers = get_event_handlers(fulfilment_microservice.fulfilment_service)
            for pattern, handler in handlers.items():
                await event_bus.subscribe_to_events(
                    pattern=pattern,
                    handler=handler,
                    durable=f"fulfilment-{pattern.replace('.', '-')}-consumer"
                )
                logger.info(f"Subscribed to {pattern} events")
        except Exception as e:
            logger.warning(f"Failed to subscribe to events: {e}")

    yield

    await fulfilment_microservice.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Fulfilment Service",
    description="Print-on-demand order routing and webhook reconciliation microservice",
    version="1.0.0",
    lifespan=lifespan
)


# Dependency injection
def get_fulfilment_service() -> FulfilmentService:
    """Get fulfilment service instance"""
    if not fulfilment_microservice.fulfilment_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Fulfilment service not initialized"
        )
    return fulfilment_microservice.fulfilment_service


def _http_error(e: FulfilmentServiceError) -> HTTPException:
    if isinstance(e, FulfilmentNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, FulfilmentValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, InvalidFulfilmentStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, ProviderNotConfiguredError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


# Health check endpoints
@app.get("/health")
async def health_check():
    """Service health check"""
    return {
        "status": "healthy",
        "service": SERVICE_METADATA["service_name"],
        "port": config.service_port,
        "version": SERVICE_METADATA["version"],
        "routes": get_route_summary(),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# Provider webhooks

async def _receive_webhook(
    provider: FulfilmentProvider,
    request: Request,
    credential: Optional[str],
    service: FulfilmentService,
) -> WebhookResponse:
    raw_payload = await request.body()
    try:
        receipt = await service.receive_webhook(provider, raw_payload, credential)
    except ProviderNotConfiguredError as e:
        logger.error(f"{provider.value} webhook received but not configured: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Webhook not configured")

    if not receipt.authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook credentials")

    # Acknowledge everything authenticated, so providers do not retry unfixable deliveries
    return WebhookResponse(received=True, outcome=receipt.outcome)


@app.post("/api/v1/fulfilment/webhooks/printful", response_model=WebhookResponse)
async def printful_webhook(
    request: Request,
    x_printful_signature: Optional[str] = Header(None),
    service: FulfilmentService = Depends(get_fulfilment_service)
):
    """Printful webhook (HMAC-SHA256 signature of the raw body)"""
    return await _receive_webhook(FulfilmentProvider.PRINTFUL, request, x_printful_signature, service)


@app.get("/api/v1/fulfilment/webhooks/printful")
async def printful_webhook_health():
    """Printful webhook endpoint check"""
    return {"status": "ok", "service": "printful-webhook"}


@app.post("/api/v1/fulfilment/webhooks/blurb", response_model=WebhookResponse)
async def blurb_webhook(
    request: Request,
    authorization: Optional[str] = Header(None),
    service: FulfilmentService = Depends(get_fulfilment_service)
):
    """Blurb webhook (shared bearer token)"""
    return await _receive_webhook(FulfilmentProvider.BLURB, request, authorization, service)


@app.get("/api/v1/fulfilment/webhooks/blurb")
async def blurb_webhook_health():
    """Blurb webhook endpoint check"""
    return {"status": "ok", "service": "blurb-webhook"}


# Routing & status

@app.post("/api/v1/fulfilment/orders/{order_id}/route", response_model=RoutingResult)
async def route_order(
    order_id: str = Path(..., description="Order ID"),
    service: FulfilmentService = Depends(get_fulfilment_service)
):
    """Route an order's pending items to their providers"""
    try:
        return await service.route_order(order_id)
    except FulfilmentServiceError as e:
        raise _http_error(e)


@app.get("/api/v1/fulfilment/orders/{order_id}/status", response_model=OrderFulfilmentStatus)
async def get_order_fulfilment_status(
    order_id: str = Path(..., description="Order ID"),
    service: FulfilmentService = Depends(get_fulfilment_service)
):
    """Fulfilment summary for an order"""
    try:
        return await service.get_order_fulfilment_status(order_id)
    except FulfilmentServiceError as e:
        raise _http_error(e)


@app.post("/api/v1/fulfilment/items/{item_id}/retry", response_model=RetryResponse)
async def retry_item(
    item_id: str = Path(..., description="Order item ID"),
    service: FulfilmentService = Depends(get_fulfilment_service)
):
    """Resubmit a failed item"""
    try:
        success = await service.retry_fulfilment(item_id)
        return RetryResponse(item_id=item_id, success=success)
    except FulfilmentServiceError as e:
        raise _http_error(e)


@app.get("/api/v1/fulfilment/providers", response_model=ProvidersResponse)
async def list_providers(
    service: FulfilmentService = Depends(get_fulfilment_service)
):
    """Providers and whether they are configured"""
    return ProvidersResponse(providers=service.get_available_providers())


if __name__ == "__main__":
    # Print configuration summary for debugging
    config_manager.print_config_summary()

    uvicorn.run(
        "microservices.fulfilment_service.main:app",
        host=config.service_host,
        port=config.service_port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
