"""
Component Test Layer Configuration

Structure:
    tests/component/
    ├── tdd/         Service behaviour with mocked dependencies
    └── mocks/       Shared mock implementations

Usage:
    pytest tests/component -v
    pytest tests/component/tdd/fulfilment_service -v
"""
import os
import sys

import pytest

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["NATS_ENABLED"] = "false"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

# Load test environment variables
from pathlib import Path
from dotenv import load_dotenv

project_root = Path(__file__).parent.parent.parent
test_env_file = project_root / "tests" / "config" / ".env.test"
if test_env_file.exists():
    load_dotenv(test_env_file, override=True)

from tests.component.mocks import MockEventBus, MockHttpClient


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


# =============================================================================
# Event Bus Mocks
# =============================================================================

@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


# =============================================================================
# HTTP Client Mocks
# =============================================================================

@pytest.fixture
def mock_http_client() -> MockHttpClient:
    """Mock HTTP client for inter-service calls"""
    return MockHttpClient()


@pytest.fixture
def printful_http() -> MockHttpClient:
    """Mock HTTP client behind the Printful adapter"""
    return MockHttpClient()


@pytest.fixture
def blurb_http() -> MockHttpClient:
    """Mock HTTP client behind the Blurb adapter"""
    return MockHttpClient()
