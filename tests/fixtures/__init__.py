"""
Test fixtures for the key-value store.

- FakeClock: Controllable time for deterministic expiry tests
- ConfigFactory: Pre-configured service settings
"""

from .fake_clock import FakeClock, create_test_clock
from .config_factory import ConfigFactory

__all__ = [
    "FakeClock",
    "create_test_clock",
    "ConfigFactory",
]
