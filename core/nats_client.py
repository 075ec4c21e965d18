"""
NATS JetStream Client for Python Microservices

Event-driven communication between platform services, built on nats-py.
Events are JSON envelopes published to JetStream streams named after the
first segment of the event type (``fulfilment.*`` -> ``fulfilment-stream``).
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING, Union

import nats
from nats.aio.client import Client as NATS
from nats.js import JetStreamContext

if TYPE_CHECKING:
    from core.config_manager import ConfigManager


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles Decimal types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        return super().default(obj)


logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event types exchanged with the fulfilment service"""

    # Ordering / payment events (consumed)
    ORDER_PAID = "order.paid"
    PAYMENT_COMPLETED = "payment.completed"

    # Fulfilment events (published)
    FULFILMENT_ORDER_ROUTED = "fulfilment.order.routed"
    FULFILMENT_ITEM_STATUS_CHANGED = "fulfilment.item.status_changed"
    FULFILMENT_ORDER_STATUS_CHANGED = "fulfilment.order.status_changed"


class ServiceSource(Enum):
    """Event sources"""

    ORDER_SERVICE = "order_service"
    PAYMENT_SERVICE = "payment_service"
    FULFILMENT_SERVICE = "fulfilment_service"
    NOTIFICATION_SERVICE = "notification_service"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: Union[EventType, str],
        source: Union[ServiceSource, str],
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value if isinstance(event_type, EventType) else event_type
        self.source = source.value if isinstance(source, ServiceSource) else source
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id")
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event


EventHandler = Callable[[Event], Awaitable[None]]


class NATSEventBus:
    """NATS JetStream event bus"""

    def __init__(
        self,
        service_name: str,
        config: Optional["ConfigManager"] = None,
        url: Optional[str] = None,
    ):
        """
        Initialize NATS Event Bus.

        Args:
            service_name: Name of the service (used for durable consumer names)
            config: Optional ConfigManager instance for endpoint resolution
            url: Explicit NATS URL, overrides configuration
        """
        from core.config_manager import ConfigManager

        self.service_name = service_name

        if config is None:
            config = ConfigManager(service_name)

        self.url = url or config.settings.infra.resolved_nats_url

        self._nc: Optional[NATS] = None
        self._js: Optional[JetStreamContext] = None
        self._subscriptions: List[Any] = []
        self._known_streams: set = set()
        self._is_connected = False

        logger.info(f"NATS EventBus initialized: {self.url}")

    async def connect(self):
        """Connect to NATS and open a JetStream context"""
        try:
            self._nc = await nats.connect(self.url, name=self.service_name)
            self._js = self._nc.jetstream()
            self._is_connected = True
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    @staticmethod
    def _get_stream_name_for_event(event_type: str) -> str:
        """fulfilment.order.routed -> fulfilment-stream"""
        return f"{event_type.split('.')[0]}-stream"

    async def _ensure_stream(self, event_type: str) -> str:
        stream_name = self._get_stream_name_for_event(event_type)
        if stream_name in self._known_streams:
            return stream_name

        subject_prefix = event_type.split('.')[0]
        try:
            await self._js.add_stream(name=stream_name, subjects=[f"{subject_prefix}.>"])
        except Exception as e:
            # Stream already exists with a compatible config
            logger.debug(f"Stream creation note: {e}")
        self._known_streams.add(stream_name)
        return stream_name

    async def publish_event(self, event: Event) -> bool:
        """Publish an event to JetStream, using event.type as the subject"""
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return False

        try:
            stream_name = await self._ensure_stream(event.type)
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()
            ack = await self._js.publish(event.type, data, headers={"Nats-Msg-Id": event.id})
            logger.info(f"Published event {event.type} [{event.id}] to stream {stream_name}, seq={ack.seq}")
            return True
        except Exception as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    async def subscribe_to_events(
        self,
        pattern: str,
        handler: EventHandler,
        durable: Optional[str] = None,
    ) -> bool:
        """
        Subscribe a handler to a subject pattern.

        Messages are acked after the handler returns; handler exceptions are
        logged and the message is acked anyway, so a poison message cannot
        stall the consumer.
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return False

        durable_name = durable or f"{self.service_name}-{pattern}".replace(".", "-").replace("*", "all").replace(">", "all")

        async def _on_message(msg):
            try:
                event = Event.from_dict(json.loads(msg.data.decode()))
                await handler(event)
            except Exception as e:
                logger.error(f"Error handling message on {msg.subject}: {e}")
            finally:
                await msg.ack()

        try:
            await self._ensure_stream(pattern)
            sub = await self._js.subscribe(pattern, durable=durable_name, cb=_on_message, manual_ack=True)
            self._subscriptions.append(sub)
            logger.info(f"Subscribed to {pattern} (durable={durable_name})")
            return True
        except Exception as e:
            logger.error(f"Failed to subscribe to {pattern}: {e}")
            return False

    async def close(self):
        """Drain subscriptions and close the connection"""
        for sub in self._subscriptions:
            try:
                await sub.unsubscribe()
            except Exception as e:
                logger.debug(f"Unsubscribe note: {e}")
        self._subscriptions.clear()

        if self._nc:
            await self._nc.drain()
            self._nc = None
            self._js = None

        self._is_connected = False
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS"""
        return self._is_connected


# Singleton instance
_event_bus: Optional[NATSEventBus] = None


async def get_event_bus(
    service_name: str,
    config: Optional["ConfigManager"] = None,
) -> NATSEventBus:
    """
    Get or create event bus instance.

    Args:
        service_name: Name of the service using the event bus
        config: Optional ConfigManager instance

    Returns:
        Connected NATSEventBus instance
    """
    global _event_bus

    if _event_bus is None:
        bus = NATSEventBus(service_name=service_name, config=config)
        await bus.connect()
        _event_bus = bus

    return _event_bus
