"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

# Set test environment variables before any src import reads them
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("APP_TIMEZONE", "UTC")
os.environ.setdefault("LOG_FORMAT", "text")

from tests.utils.factories import create_property_data, create_user_data  # noqa: E402
from tests.utils.fake_store import InMemoryStore  # noqa: E402

FROZEN_NOW = "2029-06-01 12:00:00"


@pytest.fixture
def frozen_clock():
    """Freeze the clock well before the 2030 slots used in tests."""
    with freeze_time(FROZEN_NOW) as frozen_time:
        yield frozen_time


@pytest.fixture
def sample_property():
    return create_property_data()


@pytest.fixture
def admin_user():
    return create_user_data(role="admin")


@pytest.fixture
def agent_user():
    return create_user_data(role="user")


@pytest.fixture
def store(monkeypatch, sample_property, admin_user, agent_user):
    """In-memory store seeded with one property, an admin and an agent."""
    fake_store = InMemoryStore()
    fake_store.add_property(sample_property)
    fake_store.add_user(admin_user)
    fake_store.add_user(agent_user)
    return fake_store.install(monkeypatch)


@pytest.fixture
def admin_token(admin_user, frozen_clock):
    from src.services.auth import create_access_token
    return create_access_token(admin_user["id"])

