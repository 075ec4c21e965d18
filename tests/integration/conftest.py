#!/usr/bin/env python3
"""
Integration Test Fixtures

Fixtures shared by integration tests that talk to real infrastructure.
Tests marked requires_db are skipped when PostgreSQL is not reachable.
"""

import os
import sys
from typing import AsyncGenerator, List

import pytest
import pytest_asyncio

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))

from core.postgres_client import PostgresClientWrapper
from microservices.fulfilment_service.fulfilment_repository import FulfilmentRepository


@pytest_asyncio.fixture(scope="function")
async def fulfilment_db() -> AsyncGenerator[PostgresClientWrapper, None]:
    """
    Pool wrapper for the fulfilment database

    Connection settings come from POSTGRES_* environment variables.
    """
    db = PostgresClientWrapper("fulfilment_service", min_size=1, max_size=5)
    health = await db.health_check()
    if not health:
        await db.close()
        pytest.skip("PostgreSQL not available")

    try:
        yield db
    finally:
        await db.close()


@pytest_asyncio.fixture(scope="function")
async def created_order_ids() -> List[str]:
    return []


@pytest_asyncio.fixture(scope="function")
async def fulfilment_repository(fulfilment_db, created_order_ids) -> AsyncGenerator[FulfilmentRepository, None]:
    """
    Repository with the schema applied

    Orders appended to created_order_ids are deleted (with their items and
    events) after the test.
    """
    repository = FulfilmentRepository(db=fulfilment_db)
    await repository.ensure_schema()

    yield repository

    for order_id in created_order_ids:
        await fulfilment_db.execute(
            """
            DELETE FROM fulfilment.fulfilment_events
            WHERE order_item_id IN (SELECT id FROM fulfilment.order_items WHERE order_id = $1)
            """,
            [order_id],
        )
        await fulfilment_db.execute("DELETE FROM fulfilment.order_items WHERE order_id = $1", [order_id])
        await fulfilment_db.execute("DELETE FROM fulfilment.orders WHERE id = $1", [order_id])
