"""
Pytest configuration for quoteflow tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from quoteflow import (
    Caller,
    LifecycleEngine,
    LiveViewSynchronizer,
    MemoryInquiryStore,
    Role,
)

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

INQUIRY_FIELDS = dict(
    event_type="Wedding",
    event_date="2026-06-20",
    description="Outdoor ceremony and reception for about 80 guests",
    location="Bath, UK",
    contact_name="Alice Client",
    contact_email="alice@example.com",
    contact_phone="+44 7700 900123",
    expected_guests=80,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )
    config.addinivalue_line(
        "markers", "integration: needs a live PostgreSQL (TEST_DATABASE_URL)."
    )


class FakeClock:
    """Settable clock shared by the engine and the memory store."""

    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def inquiry_fields():
    return dict(INQUIRY_FIELDS)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryInquiryStore(clock=clock)


@pytest.fixture
def synchronizer(store):
    return LiveViewSynchronizer(store)


@pytest.fixture
def engine(store, synchronizer, clock):
    """Engine publishing straight into the in-process synchronizer."""
    return LifecycleEngine(store, publisher=synchronizer, clock=clock)


@pytest.fixture
def alice():
    return Caller("client_alice", Role.CLIENT, name="Alice Client", email="alice@example.com")


@pytest.fixture
def bob():
    return Caller("client_bob", Role.CLIENT, name="Bob Client", email="bob@example.com")


@pytest.fixture
def olly():
    return Caller("org_olly", Role.ORGANIZER, name="Olly's Events")


@pytest.fixture
def pat():
    return Caller("org_pat", Role.ORGANIZER, name="Pat Parties")


@pytest.fixture
def admin():
    return Caller("admin_1", Role.ADMIN, name="Support")


@pytest_asyncio.fixture
async def new_inquiry(engine, alice, inquiry_fields):
    """Alice's inquiry, status new."""
    return await engine.create_inquiry(alice, **inquiry_fields)


@pytest_asyncio.fixture
async def quoted_inquiry(engine, new_inquiry, olly):
    """Alice's inquiry, quoted by Olly."""
    return await engine.submit_quote(olly, new_inquiry.id, "1500", "GBP", message="Includes DJ")
