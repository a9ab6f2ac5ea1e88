"""Celery tasks for tracking event notifications."""

import asyncio
import logging
import time

from celery import shared_task

from fleetpush.config import get_settings
from fleetpush.dependencies import build_document_store
from fleetpush.exceptions import TRANSIENT_ERRORS, NoRecipientError
from fleetpush.metrics import celery_task_duration_seconds, celery_task_total
from fleetpush.schemas.events import TraccarPayload
from fleetpush.services.identity_resolver import get_identity_resolver
from fleetpush.services.notification_dispatcher import get_notification_dispatcher
from fleetpush.services.token_registry import TokenRegistry
from fleetpush.services.tracking_events import TrackingEvent, TrackingEventService
from fleetpush.tasks.celery_app import celery_app  # noqa: F401  (makes the configured app current)

logger = logging.getLogger(__name__)

TASK_NAME = "fleetpush.tasks.notification_tasks.dispatch_tracking_event"


async def _handle_payload(payload: dict) -> dict:
    settings = get_settings()
    parsed = TraccarPayload.model_validate(payload)
    event = TrackingEvent(
        event_type=parsed.event.type,
        device_id=parsed.event.device_id,
        device_name=parsed.device.name,
        attributes=parsed.event.attributes or {},
        event_time=parsed.event.event_time,
    )
    store = build_document_store(settings)
    try:
        registry = TokenRegistry(store, timeout=settings.store_timeout_seconds)
        service = TrackingEventService(
            get_identity_resolver(settings),
            get_notification_dispatcher(settings, registry),
        )
        report = await service.handle(event)
    finally:
        await store.close()
    return {"sent": report.sent, "failed": report.failed, "invalid_removed": report.invalid_removed}


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,
    autoretry_for=TRANSIENT_ERRORS,
    retry_backoff=True,
    name=TASK_NAME,
)
def dispatch_tracking_event(self, payload: dict) -> dict | None:
    """Notify the owner of the device in a forwarded Traccar payload.

    Registry and push gateway outages are retried with backoff; a device
    without a reachable owner is dropped.
    """
    start = time.monotonic()
    try:
        result = asyncio.run(_handle_payload(payload))
    except NoRecipientError as e:
        logger.info("Tracking event dropped: %s", e.message)
        celery_task_total.labels(task_name=TASK_NAME, status="no_recipient").inc()
        return None
    except TRANSIENT_ERRORS:
        celery_task_total.labels(task_name=TASK_NAME, status="retry").inc()
        raise
    finally:
        celery_task_duration_seconds.labels(task_name=TASK_NAME).observe(time.monotonic() - start)
    celery_task_total.labels(task_name=TASK_NAME, status="success").inc()
    return result
