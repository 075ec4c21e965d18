"""
Fulfilment Service Component Test Configuration

Wires FulfilmentService to the in-memory repository, real provider
adapters over MockHttpClient, and mock peer clients.
"""
import pytest
import pytest_asyncio

from tests.component.tdd.fulfilment_service.mocks import (
    MockDocumentClient,
    MockFulfilmentRepository,
    MockNotificationClient,
    make_blurb,
    make_printful,
    make_registry,
)


@pytest.fixture
def mock_repo() -> MockFulfilmentRepository:
    """Fresh in-memory fulfilment repository"""
    return MockFulfilmentRepository()


@pytest.fixture
def mock_notifier() -> MockNotificationClient:
    return MockNotificationClient()


@pytest.fixture
def mock_documents() -> MockDocumentClient:
    return MockDocumentClient()


@pytest.fixture
def printful(printful_http):
    return make_printful(printful_http)


@pytest.fixture
def blurb(blurb_http):
    return make_blurb(blurb_http)


@pytest.fixture
def providers(printful, blurb):
    return make_registry(printful, blurb)


@pytest_asyncio.fixture
async def fulfilment_service(mock_repo, providers, mock_event_bus, mock_notifier, mock_documents):
    """FulfilmentService with mocked dependencies"""
    from microservices.fulfilment_service.fulfilment_service import FulfilmentService

    service = FulfilmentService(
        repository=mock_repo,
        providers=providers,
        event_bus=mock_event_bus,
        notification_client=mock_notifier,
        document_client=mock_documents,
    )
    yield service
    await service.close()
