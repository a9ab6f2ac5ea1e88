"""Celery application configuration."""

from celery import Celery

from fleetpush.config import get_settings

settings = get_settings()

celery_app = Celery(
    "fleetpush",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "fleetpush.tasks.notification_tasks.*": {"queue": "notifications"},
    },
)

celery_app.autodiscover_tasks(["fleetpush.tasks"])
