"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (NATS, HTTP).

Service-specific mocks live in tests/component/tdd/{service}/mocks.py
"""

from .nats_mock import MockEventBus
from .http_mock import MockHttpClient, MockHttpResponse

__all__ = [
    'MockEventBus',
    'MockHttpClient',
    'MockHttpResponse',
]
