"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from adaptive_engine.delivery.state_store import InMemoryMasteryStore, LearnableItem  # noqa: E402
from adaptive_engine.learning.models import Annotation, BoundingBox  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FrozenClock:
    """Settable clock for deterministic timestamps."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Clock frozen at 2024-03-01 09:00 UTC."""
    return FrozenClock(datetime(2024, 3, 1, 9, 0, tzinfo=UTC))


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during the test."""
    from loguru import logger

    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def catalog():
    """Ten visible items of increasing difficulty plus one hidden item."""
    items = [
        LearnableItem(item_id=f"item-{i:02d}", item_type="anatomical", difficulty=1 + i % 5)
        for i in range(10)
    ]
    items.append(LearnableItem(item_id="hidden", item_type="anatomical", visible=False))
    return items


@pytest.fixture
def memory_store(catalog):
    return InMemoryMasteryStore(catalog)


@pytest.fixture
def beak_annotation():
    """A confident annotation of 'el pico' with a box."""
    return Annotation(
        feature="el pico",
        english_term="beak",
        bounding_box=BoundingBox(x=0.4, y=0.3, width=0.1, height=0.08),
        confidence=0.9,
        difficulty_level=2,
    )
