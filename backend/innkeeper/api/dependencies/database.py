"""Request-scoped database session; tests override this dependency."""

from ...database import get_db

__all__ = ["get_db"]
