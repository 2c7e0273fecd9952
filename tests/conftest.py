"""
Pytest fixtures for JengaTrack tests.

Tests run against in-memory SQLite through the same models used in
production.
"""

import os

# Set environment variables for tests
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("WHATSAPP_PROVIDER", "stub")

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from jengatrack.core.db import Base
from jengatrack.core.settings import get_settings
from jengatrack.messaging.interaction_log import InteractionLog
from jengatrack.messaging.providers.stub import StubWhatsAppProvider
from jengatrack.storage import models  # noqa: F401  registers tables on Base
from jengatrack.storage.repository import JengaTrackRepository


@pytest.fixture
def engine():
    """Fresh in-memory database with every table created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Database session bound to the test database."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def repo(db_session):
    return JengaTrackRepository(db_session)


@pytest.fixture
def stub_provider():
    """Stub provider recording every outbound message."""
    return StubWhatsAppProvider()


@pytest.fixture
def interaction_log():
    """In-memory interaction log."""
    return InteractionLog(capacity=100)


@pytest.fixture
def sample_phone():
    """Sample phone number."""
    return "+256700000001"


@pytest.fixture
def profile(repo, sample_phone):
    """Registered profile without a project."""
    return repo.create_user_profile(sample_phone, "Test Builder").data


@pytest.fixture
def project(repo, db_session, profile):
    """Active project with a budget of 1,000,000."""
    project = repo.create_project(
        user_id=profile.id,
        name="Kampala House",
        budget_amount=Decimal("1000000"),
    )
    db_session.commit()
    return project


@pytest.fixture
def reset_settings():
    """Clear cached settings before and after a test that changes the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
