"""Shared fixtures for usage ledger tests."""

from datetime import date

import pytest

from src.cache.counter_store import InMemoryCounterStore
from src.usage.ledger import UsageLedger

TODAY = date(2026, 3, 14)


@pytest.fixture
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def ledger(counter_store: InMemoryCounterStore) -> UsageLedger:
    """Ledger pinned to a fixed local date."""
    return UsageLedger(counter_store, today=lambda: TODAY)
