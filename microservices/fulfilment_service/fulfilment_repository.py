"""
Fulfilment Repository

Data access layer for orders, order items, storybooks and the fulfilment
event log using the asyncpg pool wrapper.
Matches schema: fulfilment.{orders, order_items, storybooks, fulfilment_events}

Status columns are only ever written with compare-and-set statements
(``... WHERE id = $1 AND status = $expected``) so concurrent webhooks and
routing calls cannot interleave into a state the state machine forbids.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from core.config_manager import ConfigManager
from core.postgres_client import PostgresClientWrapper

from .models import (
    FulfilmentEvent,
    FulfilmentProvider,
    FulfilmentStatus,
    Order,
    OrderItem,
    OrderStatus,
    ShippingAddress,
    StorybookProject,
)

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def _json_value(value: Any) -> Optional[Dict[str, Any]]:
    """asyncpg returns jsonb as text unless a codec is registered"""
    if value is None:
        return None
    if isinstance(value, str):
        return json.loads(value)
    return value


class FulfilmentRepository:
    """
    Repository for fulfilment operations.

    Tables:
        - fulfilment.orders: Customer orders and their aggregated status
        - fulfilment.order_items: Line items pinned to one provider
        - fulfilment.storybooks: Storybook compositions printed by Blurb
        - fulfilment.fulfilment_events: Provider interaction log (unique dedupe_key)
    """

    def __init__(self, config: Optional[ConfigManager] = None, db: Optional[PostgresClientWrapper] = None):
        """Initialize Fulfilment Repository with PostgresClient"""
        if config is None:
            config = ConfigManager("fulfilment_service")

        if db is None:
            host, port = config.discover_service(
                service_name='postgres_service',
                default_host='localhost',
                default_port=5432,
                env_host_key='POSTGRES_HOST',
                env_port_key='POSTGRES_PORT'
            )
            logger.info(f"Connecting to PostgreSQL at {host}:{port}")
            db = PostgresClientWrapper("fulfilment_service", host=host, port=port)

        self.db = db
        self.schema = "fulfilment"
        self.orders_table = f"{self.schema}.orders"
        self.items_table = f"{self.schema}.order_items"
        self.storybooks_table = f"{self.schema}.storybooks"
        self.events_table = f"{self.schema}.fulfilment_events"

        logger.info("FulfilmentRepository initialized with PostgresClient")

    async def ensure_schema(self) -> None:
        """Apply the schema migrations (idempotent)"""
        for migration in sorted(MIGRATIONS_DIR.glob("*.sql")):
            async with self.db:
                await self.db.execute(migration.read_text())
            logger.info(f"Applied migration {migration.name}")

    # =========================================================================
    # Orders
    # =========================================================================

    async def create_order(self, order: Order) -> Order:
        """Insert an order with its items"""
        try:
            async with self.db.transaction() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO {self.orders_table} (
                        id, order_number, status, subtotal_pence, shipping_pence, total_pence,
                        currency, customer_email, customer_name, shipping_address, billing_address,
                        tracking_token
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10::jsonb, $11::jsonb, $12)
                    """,
                    order.order_id,
                    order.order_number,
                    order.status.value,
                    order.subtotal_pence,
                    order.shipping_pence,
                    order.total_pence,
                    order.currency,
                    order.customer_email,
                    order.customer_name,
                    order.shipping_address.model_dump_json(),
                    order.billing_address.model_dump_json() if order.billing_address else None,
                    order.tracking_token,
                )
                for item in order.items:
                    await conn.execute(
                        f"""
                        INSERT INTO {self.items_table} (
                            id, order_id, product_name, variant_name, quantity, unit_price_pence,
                            total_price_pence, fulfilment_provider, fulfilment_order_id,
                            fulfilment_status, tracking_number, tracking_url,
                            variant_external_id, asset_url, storybook_id
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15)
                        """,
                        item.item_id,
                        order.order_id,
                        item.product_name,
                        item.variant_name,
                        item.quantity,
                        item.unit_price_pence,
                        item.total_price_pence,
                        item.fulfilment_provider.value,
                        item.fulfilment_order_id,
                        item.fulfilment_status.value,
                        item.tracking_number,
                        item.tracking_url,
                        item.variant_external_id,
                        item.asset_url,
                        item.storybook_id,
                    )

            return await self.get_order(order.order_id)

        except Exception as e:
            logger.error(f"Failed to create order {order.order_id}: {e}")
            raise

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order with its items"""
        try:
            async with self.db:
                row = await self.db.query_row(
                    f"SELECT * FROM {self.orders_table} WHERE id = $1", [order_id]
                )
                if not row:
                    return None
                item_rows = await self.db.query(
                    f"SELECT * FROM {self.items_table} WHERE order_id = $1 ORDER BY created_at, id",
                    [order_id]
                )

            return self._to_order(row, item_rows)

        except Exception as e:
            logger.error(f"Failed to get order {order_id}: {e}")
            raise

    async def find_order_by_fulfilment_order_id(
        self,
        provider: FulfilmentProvider,
        fulfilment_order_id: str
    ) -> Optional[Order]:
        """Reverse lookup by the provider's own order id"""
        try:
            async with self.db:
                row = await self.db.query_row(
                    f"""
                    SELECT order_id FROM {self.items_table}
                    WHERE fulfilment_provider = $1 AND fulfilment_order_id = $2
                    LIMIT 1
                    """,
                    [provider.value, fulfilment_order_id]
                )

            return await self.get_order(row["order_id"]) if row else None

        except Exception as e:
            logger.error(f"Failed to find order for {provider.value} order {fulfilment_order_id}: {e}")
            raise

    async def update_order_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus
    ) -> bool:
        """Compare-and-set order status"""
        try:
            async with self.db:
                count = await self.db.execute(
                    f"""
                    UPDATE {self.orders_table}
                    SET status = $3, updated_at = NOW()
                    WHERE id = $1 AND status = $2
                    """,
                    [order_id, expected_status.value, new_status.value]
                )
            return count == 1

        except Exception as e:
            logger.error(f"Failed to update status of order {order_id}: {e}")
            raise

    # =========================================================================
    # Order Items
    # =========================================================================

    async def get_order_item(self, item_id: str) -> Optional[OrderItem]:
        """Get single order item"""
        try:
            async with self.db:
                row = await self.db.query_row(
                    f"SELECT * FROM {self.items_table} WHERE id = $1", [item_id]
                )
            return self._to_item(row) if row else None

        except Exception as e:
            logger.error(f"Failed to get order item {item_id}: {e}")
            raise

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
        try:
            async with self.db:
                count = await self.db.execute(
                    f"""
                    UPDATE {self.items_table}
                    SET fulfilment_status = $3,
                        fulfilment_order_id = COALESCE($4, fulfilment_order_id),
                        tracking_number = COALESCE($5, tracking_number),
                        tracking_url = COALESCE($6, tracking_url),
                        updated_at = NOW()
                    WHERE id = $1 AND fulfilment_status = $2
                    """,
                    [
                        item_id,
                        expected_status.value,
                        new_status.value,
                        fulfilment_order_id,
                        tracking_number,
                        tracking_url,
                    ]
                )
            return count == 1

        except Exception as e:
            logger.error(f"Failed to update order item {item_id}: {e}")
            raise

    # =========================================================================
    # Storybooks
    # =========================================================================

    async def create_storybook(self, storybook: StorybookProject) -> StorybookProject:
        """Insert a storybook composition"""
        try:
            async with self.db:
                await self.db.execute(
                    f"""
                    INSERT INTO {self.storybooks_table} (id, title, child_name, page_count, pdf_url)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    [
                        storybook.storybook_id,
                        storybook.title,
                        storybook.child_name,
                        storybook.page_count,
                        storybook.pdf_url,
                    ]
                )
            return await self.get_storybook(storybook.storybook_id)

        except Exception as e:
            logger.error(f"Failed to create storybook {storybook.storybook_id}: {e}")
            raise

    async def get_storybook(self, storybook_id: str) -> Optional[StorybookProject]:
        """Get storybook composition"""
        try:
            async with self.db:
                row = await self.db.query_row(
                    f"SELECT * FROM {self.storybooks_table} WHERE id = $1", [storybook_id]
                )
            if not row:
                return None
            return StorybookProject(
                storybook_id=row["id"],
                title=row["title"],
                child_name=row.get("child_name"),
                page_count=row.get("page_count") or 0,
                pdf_url=row.get("pdf_url"),
                updated_at=row.get("updated_at"),
            )

        except Exception as e:
            logger.error(f"Failed to get storybook {storybook_id}: {e}")
            raise

    async def set_storybook_pdf_url(self, storybook_id: str, pdf_url: str) -> bool:
        """Persist rendered document URL"""
        try:
            async with self.db:
                count = await self.db.execute(
                    f"UPDATE {self.storybooks_table} SET pdf_url = $2, updated_at = NOW() WHERE id = $1",
                    [storybook_id, pdf_url]
                )
            return count == 1

        except Exception as e:
            logger.error(f"Failed to set PDF URL for storybook {storybook_id}: {e}")
            raise

    # =========================================================================
    # Fulfilment Events
    # =========================================================================

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
        try:
            async with self.db:
                row = await self.db.query_row(
                    f"""
                    INSERT INTO {self.events_table} (
                        id, order_item_id, provider, event_type, payload, dedupe_key, processed
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                    ON CONFLICT (dedupe_key) DO NOTHING
                    RETURNING *
                    """,
                    [
                        f"fev_{uuid.uuid4().hex}",
                        order_item_id,
                        provider.value,
                        event_type,
                        payload,
                        dedupe_key,
                        processed,
                    ]
                )
                if row:
                    return self._to_event(row), True

                existing = await self.db.query_row(
                    f"SELECT * FROM {self.events_table} WHERE dedupe_key = $1", [dedupe_key]
                )

            return self._to_event(existing), False

        except Exception as e:
            logger.error(f"Failed to record {provider.value} event {event_type} for item {order_item_id}: {e}")
            raise

    async def mark_event_processed(self, event_id: str) -> bool:
        """Flip processed false -> true; only one caller gets True"""
        try:
            async with self.db:
                count = await self.db.execute(
                    f"UPDATE {self.events_table} SET processed = TRUE WHERE id = $1 AND processed = FALSE",
                    [event_id]
                )
            return count == 1

        except Exception as e:
            logger.error(f"Failed to mark event {event_id} processed: {e}")
            raise

    async def get_item_events(self, order_item_id: str) -> List[FulfilmentEvent]:
        """Events for an item, oldest first"""
        try:
            async with self.db:
                rows = await self.db.query(
                    f"SELECT * FROM {self.events_table} WHERE order_item_id = $1 ORDER BY created_at, id",
                    [order_item_id]
                )
            return [self._to_event(row) for row in rows]

        except Exception as e:
            logger.error(f"Failed to get events for item {order_item_id}: {e}")
            raise

    # =========================================================================
    # Row mapping
    # =========================================================================

    @staticmethod
    def _to_item(row: Dict[str, Any]) -> OrderItem:
        return OrderItem(
            item_id=row["id"],
            order_id=row["order_id"],
            product_name=row["product_name"],
            variant_name=row.get("variant_name"),
            quantity=row.get("quantity") or 1,
            unit_price_pence=row.get("unit_price_pence") or 0,
            total_price_pence=row.get("total_price_pence") or 0,
            fulfilment_provider=FulfilmentProvider(row["fulfilment_provider"]),
            fulfilment_order_id=row.get("fulfilment_order_id"),
            fulfilment_status=FulfilmentStatus(row["fulfilment_status"]),
            tracking_number=row.get("tracking_number"),
            tracking_url=row.get("tracking_url"),
            variant_external_id=row.get("variant_external_id"),
            asset_url=row.get("asset_url"),
            storybook_id=row.get("storybook_id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def _to_order(self, row: Dict[str, Any], item_rows: List[Dict[str, Any]]) -> Order:
        billing = _json_value(row.get("billing_address"))
        return Order(
            order_id=row["id"],
            order_number=row["order_number"],
            status=OrderStatus(row["status"]),
            subtotal_pence=row.get("subtotal_pence") or 0,
            shipping_pence=row.get("shipping_pence") or 0,
            total_pence=row.get("total_pence") or 0,
            currency=row.get("currency") or "GBP",
            customer_email=row["customer_email"],
            customer_name=row.get("customer_name"),
            shipping_address=ShippingAddress(**_json_value(row["shipping_address"])),
            billing_address=ShippingAddress(**billing) if billing else None,
            tracking_token=row.get("tracking_token"),
            items=[self._to_item(item_row) for item_row in item_rows],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @staticmethod
    def _to_event(row: Dict[str, Any]) -> FulfilmentEvent:
        return FulfilmentEvent(
            event_id=row["id"],
            order_item_id=row["order_item_id"],
            provider=FulfilmentProvider(row["provider"]),
            event_type=row["event_type"],
            payload=row["payload"],
            dedupe_key=row["dedupe_key"],
            processed=row["processed"],
            created_at=row.get("created_at"),
        )

    async def close(self):
        await self.db.close()
