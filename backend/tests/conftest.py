"""
Shared fixtures for the Innkeeper test suite.

Every test gets its own in-memory SQLite database. The hotel timezone is
pinned to UTC so date-window arithmetic is easy to read in assertions.
"""

import os

# Must be set before innkeeper modules are imported
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["HOTEL_TIMEZONE"] = "UTC"
os.environ.setdefault("SITE_MODE", "local")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import Generator, List

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from tests.factories.hotel import (
    create_booking,
    create_key_cards,
    create_room,
    create_user,
)

from innkeeper.api.dependencies.database import get_db
from innkeeper.api.dependencies.services import get_settings_cache_dep
from innkeeper.database import Base
from innkeeper.main import app
from innkeeper.models import Booking, KeyCard, Room, User, UserRole
from innkeeper.services.settings_cache import SettingsCache


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create a new database session for each test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def settings_cache(session_factory: sessionmaker) -> SettingsCache:
    return SettingsCache(session_factory, ttl_seconds=300)


@pytest.fixture
def client(db: Session, settings_cache: SettingsCache) -> Generator[TestClient, None, None]:
    """Create a test client bound to the test database."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings_cache_dep] = lambda: settings_cache

    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


@pytest.fixture
def guest(db: Session) -> User:
    return create_user(db, first_name="Ada", last_name="Guest")


@pytest.fixture
def other_guest(db: Session) -> User:
    return create_user(db, first_name="Other", last_name="Guest")


@pytest.fixture
def staff(db: Session) -> User:
    return create_user(db, role=UserRole.STAFF, first_name="Front", last_name="Desk")


@pytest.fixture
def room(db: Session) -> Room:
    return create_room(db, room_number="101")


@pytest.fixture
def key_cards(db: Session) -> List[KeyCard]:
    return create_key_cards(db, 3)


@pytest.fixture
def booking(db: Session, guest: User, room: Room) -> Booking:
    """Confirmed booking from D-2 to D (see ``DAY_D``)."""
    return create_booking(db, guest=guest, room=room)
