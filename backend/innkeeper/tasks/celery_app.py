# backend/innkeeper/tasks/celery_app.py
"""
Celery application for Innkeeper.

Redis is both broker and result backend. Beat drives the hold scheduler
passes, the durable job poller and the key-card sweep; the worker refuses
to start on a configuration that the API would also refuse.
"""

import logging
import os
from typing import Any, Type, cast

from celery import Celery, Task
from celery.signals import setup_logging, worker_init

from ..core.config import settings
from ..core.logging import setup_logging as configure_app_logging
from ..core.startup import validate_startup_config

logger = logging.getLogger(__name__)


def _broker_url() -> str:
    url = os.getenv("CELERY_BROKER_URL") or settings.redis_url or "redis://localhost:6379"
    # Redis URLs without a database index default to db 0
    if url.startswith("redis") and not url.rstrip("/").rsplit("/", 1)[-1].isdigit():
        url = f"{url.rstrip('/')}/0"
    return url


def create_celery_app() -> Celery:
    broker_url = _broker_url()
    app = Celery(
        "innkeeper",
        broker=broker_url,
        backend=os.getenv("CELERY_RESULT_BACKEND") or broker_url,
    )

    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        result_expires=24 * 3600,
        timezone=settings.hotel_timezone,
        enable_utc=True,
        worker_prefetch_multiplier=1,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        # A hold pass over a large backlog must not be killed mid-batch
        task_soft_time_limit=300,
        task_time_limit=600,
        worker_hijack_root_logger=False,
        broker_connection_retry_on_startup=True,
        imports=(
            "innkeeper.tasks.booking_hold_tasks",
            "innkeeper.tasks.background_job_tasks",
            "innkeeper.tasks.key_card_tasks",
        ),
        task_routes={
            "holds.*": {"queue": "scheduler"},
            "jobs.*": {"queue": "scheduler"},
            "key_cards.*": {"queue": "maintenance"},
        },
    )

    from .beat_schedule import get_beat_schedule

    app.conf.beat_schedule = get_beat_schedule(settings.environment)
    return app


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    configure_app_logging()


@worker_init.connect  # type: ignore[misc]
def validate_worker_config(*args: Any, **kwargs: Any) -> None:
    validate_startup_config()


celery_app = create_celery_app()


class BaseTask(Task):  # type: ignore[misc]
    """Retries any exception with jittered backoff and logs every outcome."""

    autoretry_for = (Exception,)
    retry_kwargs = {"max_retries": 3, "countdown": 60}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger.error(
            f"Task {self.name}[{task_id}] failed: {exc}",
            exc_info=True,
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger.warning(
            f"Task {self.name}[{task_id}] retry {self.request.retries}: {exc}",
            extra={"task_id": task_id, "task_name": self.name, "retry_count": self.request.retries},
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


celery_app.Task = cast(Type[Task], BaseTask)
