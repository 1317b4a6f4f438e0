# backend/innkeeper/services/base.py
"""
Base Service Pattern for the Innkeeper backend.

Every service owns one session and decides when a unit of work commits.
Repositories only flush. Side effects that must not undo a committed
change (notifications, invoice notes, housekeeping) run inside
``best_effort``.
"""

from contextlib import contextmanager
from datetime import datetime
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ServiceException
from ..core.metrics import SERVICE_OPERATION_SECONDS, SERVICE_OPERATIONS_TOTAL
from ..core.timezone_utils import ensure_utc, utcnow

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit on clean exit, roll back on any error.

        Database errors surface as ``ServiceException``; domain errors raised
        inside the block propagate unchanged after the rollback.
        """
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {str(e)}")
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def best_effort(self, action: str, **context: Any) -> Iterator[None]:
        """Run a side effect; a failure is logged with ``context`` and dropped."""
        try:
            yield
        except Exception:
            self.logger.warning(
                f"Best-effort step failed: {action}",
                exc_info=True,
                extra={"action": action, **context},
            )

    @staticmethod
    def resolve_now(now: Optional[datetime] = None) -> datetime:
        return cast(datetime, ensure_utc(now)) if now is not None else utcnow()

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Count and time a service method in Prometheus.

        Usage:
            @BaseService.measure_operation("check_in")
            def check_in(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                service = self.__class__.__name__
                started = time.perf_counter()
                outcome = "error"
                try:
                    result = func(self, *args, **kwargs)
                    outcome = "success"
                    return result
                finally:
                    elapsed = time.perf_counter() - started
                    SERVICE_OPERATIONS_TOTAL.labels(
                        service=service, operation=operation_name, status=outcome
                    ).inc()
                    SERVICE_OPERATION_SECONDS.labels(
                        service=service, operation=operation_name
                    ).observe(elapsed)
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})
