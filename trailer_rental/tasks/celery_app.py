# trailer_rental/tasks/celery_app.py
"""
Celery application configuration.

Beat runs in the business time zone so the daily auto-extension fires at a
local wall-clock hour across DST changes.
"""

import logging
from typing import Any, Dict, Type, cast

from celery import Celery, Task
from celery.signals import setup_logging

from trailer_rental.core.config import Settings, get_settings


def create_celery_app(settings: Settings) -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    celery_app = Celery(
        "trailer_rental",
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
    )
    celery_app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": settings.business_timezone,
            "enable_utc": True,
            "worker_prefetch_multiplier": 1,
            "task_soft_time_limit": 300,
            "task_time_limit": 600,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "worker_hijack_root_logger": False,
        }
    )
    celery_app.conf.imports = ("trailer_rental.tasks.rental_tasks",)

    from trailer_rental.tasks.beat_schedule import get_beat_schedule

    celery_app.conf.beat_schedule = get_beat_schedule(settings)
    return celery_app


# Disable Celery's default logging configuration
@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app(get_settings())


class BaseTask(Task):  # type: ignore[misc]
    """Base task that logs failures and retries."""

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logging.getLogger(__name__).error(
            f"Task {self.name}[{task_id}] failed with exception: {exc}",
            exc_info=True,
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logging.getLogger(__name__).warning(
            f"Task {self.name}[{task_id}] retry {self.request.retries} due to: {exc}",
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


celery_app.Task = cast(Type[Task], BaseTask)


@celery_app.task(name="trailer_rental.tasks.health_check")  # type: ignore[misc]
def health_check() -> Dict[str, str]:
    """Simple health check task to verify Celery is working."""
    from datetime import datetime, timezone

    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
