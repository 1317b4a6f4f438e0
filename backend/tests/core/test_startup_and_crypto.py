from datetime import datetime, timezone
import logging

from cryptography.fernet import Fernet
from pydantic import SecretStr
import pytest

from innkeeper.core import crypto
from innkeeper.core.config import Settings, settings
from innkeeper.core.startup import validate_startup_config
from innkeeper.core.timezone_utils import end_of_hotel_day, ensure_utc, hotel_date


class TestStartupConfig:
    def test_skip_flag_refused_in_production(self):
        config = Settings(
            environment="production",
            skip_stay_date_validation=True,
            settings_encryption_key=Fernet.generate_key().decode(),
        )

        with pytest.raises(RuntimeError, match="SKIP_STAY_DATE_VALIDATION"):
            validate_startup_config(config)

    def test_skip_flag_logged_outside_production(self, caplog):
        config = Settings(environment="development", skip_stay_date_validation=True)

        with caplog.at_level(logging.WARNING, logger="innkeeper.core.startup"):
            validate_startup_config(config)

        assert "DISABLED" in caplog.text

    def test_production_requires_encryption_key(self, monkeypatch):
        monkeypatch.setattr(settings, "settings_encryption_key", None)

        with pytest.raises(RuntimeError, match="SETTINGS_ENCRYPTION_KEY"):
            validate_startup_config(Settings(environment="production"))

    def test_environment_is_normalized(self):
        assert Settings(environment=" Production ").is_production is True

    def test_unknown_hotel_timezone_rejected(self):
        with pytest.raises(ValueError):
            Settings(hotel_timezone="Mars/Olympus_Mons")


class TestCrypto:
    def test_passthrough_without_key(self, monkeypatch):
        monkeypatch.setattr(settings, "settings_encryption_key", None)

        assert crypto.encrypt_str("secret") == "secret"
        assert crypto.decrypt_str("secret") == "secret"
        assert crypto.encryption_available() is False

    def test_round_trip_with_key(self, monkeypatch):
        monkeypatch.setattr(
            settings, "settings_encryption_key", SecretStr(Fernet.generate_key().decode())
        )

        token = crypto.encrypt_str("secret")

        assert token != "secret"
        assert crypto.decrypt_str(token) == "secret"

    def test_foreign_token_is_rejected(self, monkeypatch):
        monkeypatch.setattr(
            settings, "settings_encryption_key", SecretStr(Fernet.generate_key().decode())
        )
        foreign = Fernet(Fernet.generate_key()).encrypt(b"secret").decode()

        with pytest.raises(ValueError):
            crypto.decrypt_str(foreign)

    @pytest.mark.parametrize("key", [None, "", "not base64!", "c2hvcnQ="])
    def test_invalid_keys(self, key):
        with pytest.raises(RuntimeError):
            crypto.validate_encryption_key(key)


class TestHotelTime:
    def test_end_of_day_in_hotel_timezone(self, monkeypatch):
        monkeypatch.setattr(settings, "hotel_timezone", "Asia/Colombo")
        late = datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc)

        # 20:00 UTC is already 01:30 on the 11th in Colombo (UTC+05:30)
        assert hotel_date(late).isoformat() == "2026-03-11"
        end = end_of_hotel_day(late)
        assert end.tzinfo == timezone.utc
        assert (end.year, end.month, end.day, end.hour, end.minute) == (2026, 3, 11, 18, 29)

    def test_naive_values_are_treated_as_utc(self):
        naive = datetime(2026, 3, 10, 12, 0)
        assert ensure_utc(naive) == datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert ensure_utc(None) is None

    def test_hotel_date_of_naive_value(self, monkeypatch):
        monkeypatch.setattr(settings, "hotel_timezone", "Asia/Colombo")

        assert hotel_date(datetime(2026, 3, 10, 20, 0)).isoformat() == "2026-03-11"
