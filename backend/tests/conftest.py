"""
Pytest configuration for API and service tests.
"""

import pytest
from fastapi.testclient import TestClient

from main import create_app
from middleware.jwt_session import create_access_token
from quoteflow import Caller, MemoryInquiryStore, Role


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: needs a live PostgreSQL (TEST_DATABASE_URL)."
    )


class StubEnhancer:

    async def enhance(self, text, context):
        return f"Polished: {text}"


@pytest.fixture
def store():
    return MemoryInquiryStore()


@pytest.fixture
def app(store):
    return create_app(store=store, enhancer=StubEnhancer())


@pytest.fixture
def client(app):
    """TestClient with the app lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth():
    """Build Authorization headers for a caller."""
    def _headers(caller: Caller) -> dict:
        return {"Authorization": f"Bearer {create_access_token(caller)}"}
    return _headers


@pytest.fixture
def alice():
    return Caller("client_alice", Role.CLIENT, name="Alice Client", email="alice@example.com")


@pytest.fixture
def bob():
    return Caller("client_bob", Role.CLIENT, name="Bob Client")


@pytest.fixture
def olly():
    return Caller("org_olly", Role.ORGANIZER, name="Olly's Events")


@pytest.fixture
def pat():
    return Caller("org_pat", Role.ORGANIZER, name="Pat Parties")


@pytest.fixture
def admin():
    return Caller("admin_1", Role.ADMIN)


@pytest.fixture
def inquiry_body():
    return {
        "event_type": "Corporate dinner",
        "event_date": "2031-09-12",
        "description": "Three-course dinner for the sales team",
        "location": "Leeds",
        "contact_name": "Alice Client",
        "contact_email": "alice@example.com",
        "contact_phone": "0113 496 0000",
        "expected_guests": "45",
    }
