"""
Fulfilment Repository Integration Tests

Runs FulfilmentRepository against a real PostgreSQL database. Skipped when
PostgreSQL is not reachable.

Usage:
    POSTGRES_HOST=localhost pytest tests/integration/tdd/fulfilment_service -v
"""

import asyncio

import pytest

from microservices.fulfilment_service.models import (
    FulfilmentProvider,
    FulfilmentStatus,
    OrderStatus,
)
from tests.contracts.fulfilment.data_contract import FulfilmentTestDataFactory as F

pytestmark = [pytest.mark.integration, pytest.mark.asyncio, pytest.mark.requires_db]


async def _create(repository, created_order_ids, order):
    created_order_ids.append(order.order_id)
    return await repository.create_order(order)


class TestOrders:

    async def test_create_and_get_order(self, fulfilment_repository, created_order_ids):
        order = F.make_mixed_order()

        stored = await _create(fulfilment_repository, created_order_ids, order)

        assert stored.order_id == order.order_id
        assert stored.status == OrderStatus.PAID
        assert stored.shipping_address == order.shipping_address
        assert {item.item_id for item in stored.items} == {item.item_id for item in order.items}
        assert all(item.fulfilment_status == FulfilmentStatus.PENDING for item in stored.items)

    async def test_unknown_order(self, fulfilment_repository):
        assert await fulfilment_repository.get_order(F.make_order_id()) is None

    async def test_order_status_compare_and_set(self, fulfilment_repository, created_order_ids):
        order = await _create(fulfilment_repository, created_order_ids, F.make_order())

        assert await fulfilment_repository.update_order_status(order.order_id, OrderStatus.PAID, OrderStatus.PROCESSING)
        assert not await fulfilment_repository.update_order_status(order.order_id, OrderStatus.PAID, OrderStatus.SHIPPED)
        assert (await fulfilment_repository.get_order(order.order_id)).status == OrderStatus.PROCESSING


class TestOrderItems:

    async def test_item_compare_and_set(self, fulfilment_repository, created_order_ids):
        order = await _create(fulfilment_repository, created_order_ids, F.make_order())
        item_id = order.items[0].item_id

        sent = await fulfilment_repository.update_item_fulfilment(
            item_id, FulfilmentStatus.PENDING, FulfilmentStatus.SENT, fulfilment_order_id="998877"
        )
        stale = await fulfilment_repository.update_item_fulfilment(
            item_id, FulfilmentStatus.PENDING, FulfilmentStatus.FAILED
        )

        item = await fulfilment_repository.get_order_item(item_id)
        assert sent is True
        assert stale is False
        assert item.fulfilment_status == FulfilmentStatus.SENT
        assert item.fulfilment_order_id == "998877"

    async def test_null_fields_do_not_overwrite(self, fulfilment_repository, created_order_ids):
        order = await _create(fulfilment_repository, created_order_ids, F.make_order())
        item_id = order.items[0].item_id
        await fulfilment_repository.update_item_fulfilment(
            item_id, FulfilmentStatus.PENDING, FulfilmentStatus.SENT, fulfilment_order_id="1"
        )

        await fulfilment_repository.update_item_fulfilment(
            item_id, FulfilmentStatus.SENT, FulfilmentStatus.FULFILLED,
            tracking_number="RN1", tracking_url="https://track.example.com/RN1",
        )

        item = await fulfilment_repository.get_order_item(item_id)
        assert item.fulfilment_order_id == "1"
        assert item.tracking_number == "RN1"
        assert item.fulfilment_status == FulfilmentStatus.FULFILLED

    async def test_concurrent_writers_one_wins(self, fulfilment_repository, created_order_ids):
        order = await _create(fulfilment_repository, created_order_ids, F.make_order())
        item_id = order.items[0].item_id

        results = await asyncio.gather(*[
            fulfilment_repository.update_item_fulfilment(item_id, FulfilmentStatus.PENDING, FulfilmentStatus.SENT)
            for _ in range(5)
        ])

        assert results.count(True) == 1

    async def test_find_by_provider_order_id(self, fulfilment_repository, created_order_ids):
        order = await _create(fulfilment_repository, created_order_ids, F.make_mixed_order())
        blurb_item = next(i for i in order.items if i.fulfilment_provider == FulfilmentProvider.BLURB)
        blurb_order_id = F.make_blurb_order_id()
        await fulfilment_repository.update_item_fulfilment(
            blurb_item.item_id, FulfilmentStatus.PENDING, FulfilmentStatus.SENT, fulfilment_order_id=blurb_order_id
        )

        found = await fulfilment_repository.find_order_by_fulfilment_order_id(FulfilmentProvider.BLURB, blurb_order_id)
        wrong_provider = await fulfilment_repository.find_order_by_fulfilment_order_id(
            FulfilmentProvider.PRINTFUL, blurb_order_id
        )

        assert found.order_id == order.order_id
        assert wrong_provider is None


class TestFulfilmentEvents:

    async def test_record_event_dedupes(self, fulfilment_repository, created_order_ids):
        order = await _create(fulfilment_repository, created_order_ids, F.make_order())
        item_id = order.items[0].item_id
        key = f"printful:{F.make_secret()}"

        first, inserted = await fulfilment_repository.record_event(
            item_id, FulfilmentProvider.PRINTFUL, "package_shipped", '{"a": 1}', key
        )
        again, inserted_again = await fulfilment_repository.record_event(
            item_id, FulfilmentProvider.PRINTFUL, "package_shipped", '{"a": 1}', key
        )

        assert inserted is True
        assert inserted_again is False
        assert again.event_id == first.event_id
        assert first.payload_data() == {"a": 1}

    async def test_mark_processed_once(self, fulfilment_repository, created_order_ids):
        order = await _create(fulfilment_repository, created_order_ids, F.make_order())
        event, _ = await fulfilment_repository.record_event(
            order.items[0].item_id, FulfilmentProvider.PRINTFUL, "package_shipped", "{}", f"printful:{F.make_secret()}"
        )

        results = await asyncio.gather(*[fulfilment_repository.mark_event_processed(event.event_id) for _ in range(4)])

        assert results.count(True) == 1
        events = await fulfilment_repository.get_item_events(order.items[0].item_id)
        assert [e.processed for e in events] == [True]


class TestStorybooks:

    async def test_pdf_url_persisted(self, fulfilment_repository, fulfilment_db):
        storybook = await fulfilment_repository.create_storybook(F.make_storybook())
        try:
            assert storybook.pdf_url is None

            assert await fulfilment_repository.set_storybook_pdf_url(storybook.storybook_id, "https://docs/1.pdf")
            assert (await fulfilment_repository.get_storybook(storybook.storybook_id)).pdf_url == "https://docs/1.pdf"
        finally:
            await fulfilment_db.execute("DELETE FROM fulfilment.storybooks WHERE id = $1", [storybook.storybook_id])
