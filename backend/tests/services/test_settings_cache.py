from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

from cryptography.fernet import Fernet
from pydantic import SecretStr
import pytest

from innkeeper.core.config import settings
from innkeeper.core.constants import HOTEL_SETTINGS_KEY
from innkeeper.models import Notification
from innkeeper.repositories.hotel_config_repository import HotelConfigRepository
from innkeeper.services.notification_service import NotificationService
from innkeeper.services.settings_cache import SettingsCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(session_factory, clock):
    return SettingsCache(session_factory, ttl_seconds=60, clock=clock)


def test_defaults_when_nothing_persisted(cache):
    hotel = cache.get()

    assert hotel.notification_channels == ["in_app"]
    assert hotel.currency == "LKR"


def test_cached_value_served_until_ttl(session_factory, cache, clock):
    cache.get()
    other = SettingsCache(session_factory, ttl_seconds=60, clock=clock)
    other.persist({"hotel_name": "Harbour View"})

    clock.now += 30
    assert cache.get().hotel_name == "Innkeeper Hotel"

    clock.now += 31
    assert cache.get().hotel_name == "Harbour View"


def test_persist_invalidates_own_cache(cache):
    cache.get()

    cache.persist({"hotel_name": "Harbour View", "notification_channels": ["in_app", "email"]})

    assert cache.get().notification_channels == ["in_app", "email"]


def test_each_save_bumps_version(db, cache, staff):
    cache.persist({"hotel_name": "Harbour View"})
    cache.persist({"hotel_name": "Harbour View II"}, updated_by=staff.id)

    record = HotelConfigRepository(db).get(HOTEL_SETTINGS_KEY)
    assert record.version == 2
    assert record.updated_by == staff.id


def test_secret_fields_are_encrypted_at_rest(db, cache, monkeypatch):
    monkeypatch.setattr(
        settings, "settings_encryption_key", SecretStr(Fernet.generate_key().decode())
    )

    cache.persist({"smtp_password": "hunter2"})

    stored = HotelConfigRepository(db).get_document(HOTEL_SETTINGS_KEY)
    assert stored["smtp_password"] != "hunter2"
    assert cache.get().smtp_password == "hunter2"


class TestNotificationChannels:
    def test_without_settings_only_in_app_is_sent(self, db, guest):
        service = NotificationService(db)

        assert service.send_notification(guest.id, "hello") is True
        assert service.send_notification(guest.id, "hello", channel="email") is False
        assert db.query(Notification).count() == 1

    def test_disabled_channel_is_skipped(self, db, guest, cache):
        cache.persist({"notification_channels": ["email"]})
        service = NotificationService(db, settings_cache=cache)

        assert service.send_notification(guest.id, "hello") is False
        assert service.send_notification(guest.id, "hello", channel="email") is True

    def test_notifications_switched_off(self, db, guest, cache):
        cache.persist({"notifications_enabled": False})

        assert NotificationService(db, settings_cache=cache).send_notification(guest.id, "hi") is False

    def test_payload_is_made_json_safe(self, db, guest):
        NotificationService(db).send_notification(
            guest.id,
            "receipt",
            metadata={"amount": Decimal("10.50"), "at": datetime(2026, 3, 10, tzinfo=timezone.utc)},
        )

        payload = db.query(Notification).one().payload
        assert payload == {"amount": "10.50", "at": "2026-03-10T00:00:00+00:00"}

    def test_failure_is_reported_not_raised(self, db, guest):
        service = NotificationService(db)

        with patch.object(
            service.notification_repository, "create", side_effect=RuntimeError("db down")
        ):
            assert service.send_notification(guest.id, "hello") is False
