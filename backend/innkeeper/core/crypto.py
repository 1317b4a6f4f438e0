"""
Fernet encryption for secret hotel settings at rest.

Without ``SETTINGS_ENCRYPTION_KEY`` values pass through unchanged, which is
only allowed outside production (see ``core.startup``).
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

from .config import settings


def _secret_value(secret: Any) -> Optional[str]:
    if secret is None:
        return None
    value = secret.get_secret_value() if hasattr(secret, "get_secret_value") else str(secret)
    return value or None


@lru_cache(maxsize=4)
def _fernet_for(key: str) -> Fernet:
    return Fernet(key.encode("utf-8"))


def _cipher() -> Optional[Fernet]:
    key = _secret_value(settings.settings_encryption_key)
    if key is None:
        return None
    try:
        return _fernet_for(key)
    except ValueError as exc:
        raise ValueError("SETTINGS_ENCRYPTION_KEY is not a valid Fernet key") from exc


def validate_encryption_key(key: Optional[str]) -> None:
    """Raise RuntimeError unless ``key`` is a urlsafe-base64 32-byte Fernet key."""
    if not key:
        raise RuntimeError("SETTINGS_ENCRYPTION_KEY must be configured when running in production")
    try:
        _fernet_for(key)
    except (ValueError, TypeError) as exc:
        raise RuntimeError(
            "SETTINGS_ENCRYPTION_KEY must be 32 url-safe base64-encoded bytes"
        ) from exc


def assert_encryption_ready(secret: Any) -> None:
    validate_encryption_key(_secret_value(secret))


def encryption_available() -> bool:
    try:
        return _cipher() is not None
    except ValueError:
        return False


def encrypt_str(plain: str) -> str:
    cipher = _cipher()
    if cipher is None or plain == "":
        return plain
    return cipher.encrypt(plain.encode("utf-8")).decode("utf-8")


def decrypt_str(token: str) -> str:
    cipher = _cipher()
    if cipher is None or token == "":
        return token
    try:
        return cipher.decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        raise ValueError("Unable to decrypt hotel setting value") from exc
