"""
Fulfilment API Component Tests

FastAPI routes with the service dependency overridden; the lifespan is
not started, so no database or NATS connection is attempted.
"""
import pytest
from fastapi.testclient import TestClient

from microservices.fulfilment_service.models import FulfilmentProvider, FulfilmentStatus, OrderStatus
from tests.component.mocks import MockHttpClient
from tests.component.tdd.fulfilment_service.mocks import (
    BLURB_SECRET,
    PRINTFUL_SECRET,
    MockFulfilmentRepository,
    make_blurb,
    make_printful,
    make_registry,
    printful_created,
)
from tests.contracts.fulfilment.data_contract import FulfilmentTestDataFactory as F

pytestmark = [pytest.mark.component]

API = "/api/v1/fulfilment"


@pytest.fixture
def repo():
    return MockFulfilmentRepository()


@pytest.fixture
def printful_api():
    return MockHttpClient()


def _client(repo, providers):
    from microservices.fulfilment_service.fulfilment_service import FulfilmentService
    from microservices.fulfilment_service.main import app, get_fulfilment_service

    service = FulfilmentService(repository=repo, providers=providers)
    app.dependency_overrides[get_fulfilment_service] = lambda: service
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def client(repo, printful_api):
    from microservices.fulfilment_service.main import app

    yield _client(repo, make_registry(make_printful(printful_api), make_blurb(MockHttpClient())))
    app.dependency_overrides = {}


@pytest.fixture
def unconfigured_client(repo):
    """Both providers without API keys or webhook secrets"""
    from microservices.fulfilment_service.main import app

    providers = make_registry(
        make_printful(MockHttpClient(), api_key=None, webhook_secret=None),
        make_blurb(MockHttpClient(), api_key=None, webhook_secret=None),
    )
    yield _client(repo, providers)
    app.dependency_overrides = {}


def _sent_order(repo, provider=FulfilmentProvider.PRINTFUL):
    order_id = F.make_order_id()
    provider_order_id = F.make_printful_order_id() if provider == FulfilmentProvider.PRINTFUL else F.make_blurb_order_id()
    item = F.sent(F.make_item(order_id, provider), provider_order_id)
    order = F.make_order(items=[item], order_id=order_id, status=OrderStatus.PROCESSING)
    repo.set_order(order)
    return order, provider_order_id


# =============================================================================
# Health
# =============================================================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "fulfilment_service"
        assert data["routes"]["webhooks"] == 2

    @pytest.mark.parametrize("provider", ["printful", "blurb"])
    def test_webhook_endpoint_check(self, client, provider):
        response = client.get(f"{API}/webhooks/{provider}")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": f"{provider}-webhook"}

    def test_service_not_initialized(self):
        from microservices.fulfilment_service.main import app

        app.dependency_overrides = {}
        response = TestClient(app).get(f"{API}/providers")

        assert response.status_code == 503


# =============================================================================
# Webhooks
# =============================================================================

class TestPrintfulWebhookEndpoint:

    def test_signed_shipment_is_processed(self, client, repo):
        order, printful_id = _sent_order(repo)
        body = F.encode(F.make_printful_webhook(
            "order_updated", printful_id, order.order_id, status="fulfilled"
        ))

        response = client.post(
            f"{API}/webhooks/printful",
            content=body,
            headers={"X-Printful-Signature": F.sign_printful(body, PRINTFUL_SECRET)},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "outcome": "processed"}
        assert repo.item(order.items[0].item_id).fulfilment_status == FulfilmentStatus.FULFILLED

    def test_invalid_signature_is_401(self, client, repo):
        order, printful_id = _sent_order(repo)
        body = F.encode(F.make_printful_webhook("order_updated", printful_id, order.order_id))

        response = client.post(f"{API}/webhooks/printful", content=body, headers={"X-Printful-Signature": "deadbeef"})

        assert response.status_code == 401
        assert repo.item(order.items[0].item_id).fulfilment_status == FulfilmentStatus.SENT

    def test_missing_signature_is_401(self, client):
        response = client.post(f"{API}/webhooks/printful", content=b"{}")

        assert response.status_code == 401

    def test_signed_garbage_is_acknowledged(self, client):
        body = b"definitely not json"

        response = client.post(
            f"{API}/webhooks/printful",
            content=body,
            headers={"X-Printful-Signature": F.sign_printful(body, PRINTFUL_SECRET)},
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "ignored"

    def test_unknown_order_is_acknowledged(self, client):
        body = F.encode(F.make_printful_webhook("order_updated", F.make_printful_order_id(), F.make_order_id()))

        response = client.post(
            f"{API}/webhooks/printful",
            content=body,
            headers={"X-Printful-Signature": F.sign_printful(body, PRINTFUL_SECRET)},
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "unmatched"

    def test_not_configured_is_503(self, unconfigured_client):
        response = unconfigured_client.post(
            f"{API}/webhooks/printful", content=b"{}", headers={"X-Printful-Signature": "abc"}
        )

        assert response.status_code == 503


class TestBlurbWebhookEndpoint:

    def test_bearer_token_accepted(self, client, repo):
        order, blurb_id = _sent_order(repo, FulfilmentProvider.BLURB)
        body = F.encode(F.make_blurb_webhook("order.delivered", blurb_id, order.order_id, status="delivered"))

        response = client.post(
            f"{API}/webhooks/blurb", content=body, headers={"Authorization": f"Bearer {BLURB_SECRET}"}
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "processed"
        assert repo.order_status(order.order_id) == OrderStatus.DELIVERED

    def test_wrong_token_is_401(self, client):
        response = client.post(f"{API}/webhooks/blurb", content=b"{}", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_not_configured_is_503(self, unconfigured_client):
        response = unconfigured_client.post(
            f"{API}/webhooks/blurb", content=b"{}", headers={"Authorization": "Bearer x"}
        )

        assert response.status_code == 503


# =============================================================================
# Routing, status, retry
# =============================================================================

class TestRoutingEndpoints:

    def test_route_order(self, client, repo, printful_api):
        order = F.make_order()
        repo.set_order(order)
        printful_id = F.make_printful_order_id()
        printful_created(printful_api, printful_id)

        response = client.post(f"{API}/orders/{order.order_id}/route")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["provider_orders"][0]["provider_order_id"] == printful_id
        assert data["errors"] == []

    def test_route_unknown_order_is_404(self, client):
        response = client.post(f"{API}/orders/{F.make_order_id()}/route")

        assert response.status_code == 404

    def test_route_order_without_items_is_400(self, client, repo):
        order = F.make_order(items=[])
        repo.set_order(order)

        response = client.post(f"{API}/orders/{order.order_id}/route")

        assert response.status_code == 400

    def test_route_with_unconfigured_provider_is_503(self, unconfigured_client, repo):
        order = F.make_order()
        repo.set_order(order)

        response = unconfigured_client.post(f"{API}/orders/{order.order_id}/route")

        assert response.status_code == 503

    def test_order_status(self, client, repo):
        order, printful_id = _sent_order(repo)

        response = client.get(f"{API}/orders/{order.order_id}/status")

        assert response.status_code == 200
        data = response.json()
        assert data["order_status"] == "processing"
        assert data["all_sent"] is True
        assert data["all_fulfilled"] is False
        assert data["has_failed"] is False
        assert data["items"][0]["fulfilment_order_id"] == printful_id

    def test_order_status_unknown_is_404(self, client):
        response = client.get(f"{API}/orders/{F.make_order_id()}/status")

        assert response.status_code == 404

    def test_retry_failed_item(self, client, repo, printful_api):
        order_id = F.make_order_id()
        item = F.make_item(order_id).model_copy(update={"fulfilment_status": FulfilmentStatus.FAILED})
        repo.set_order(F.make_order(items=[item], order_id=order_id))
        printful_created(printful_api, F.make_printful_order_id())

        response = client.post(f"{API}/items/{item.item_id}/retry")

        assert response.status_code == 200
        assert response.json() == {"item_id": item.item_id, "success": True}

    def test_retry_sent_item_is_409(self, client, repo):
        order, _ = _sent_order(repo)

        response = client.post(f"{API}/items/{order.items[0].item_id}/retry")

        assert response.status_code == 409

    def test_retry_unknown_item_is_404(self, client):
        response = client.post(f"{API}/items/{F.make_item_id()}/retry")

        assert response.status_code == 404

    def test_list_providers(self, client):
        response = client.get(f"{API}/providers")

        assert response.status_code == 200
        providers = {p["provider"]: p for p in response.json()["providers"]}
        assert providers["printful"] == {"provider": "printful", "configured": True, "webhook_configured": True}
        assert providers["blurb"]["configured"] is True

    def test_list_providers_unconfigured(self, unconfigured_client):
        response = unconfigured_client.get(f"{API}/providers")

        assert all(not p["configured"] for p in response.json()["providers"])
