"""
pytest configuration and shared fixtures for key-value store tests.
"""

import pytest
from fastapi.testclient import TestClient

from at_kvstore.app import create_app
from at_kvstore.store import KeyValueStore

from tests.fixtures import FakeClock, ConfigFactory, create_test_clock


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a controllable clock for testing."""
    return create_test_clock()


@pytest.fixture
def store(fake_clock) -> KeyValueStore:
    """Fresh store driven by the fake clock."""
    return KeyValueStore(clock=fake_clock)


@pytest.fixture
def test_config():
    """Provide test configuration."""
    return ConfigFactory.minimal_kvstore()


@pytest.fixture
def app(store, test_config):
    return create_app(store=store, settings=test_config)


@pytest.fixture
def client(app):
    """Create test client"""
    return TestClient(app)


# pytest configuration

def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers",
        "concurrency: mark test as exercising concurrent store access"
    )
