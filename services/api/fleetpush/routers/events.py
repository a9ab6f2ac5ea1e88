"""Traccar event forwarding webhook."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from fleetpush.config import Settings, get_settings
from fleetpush.dependencies import get_tracking_event_service
from fleetpush.exceptions import ValidationError
from fleetpush.routers.notifications import dispatch_status_code
from fleetpush.schemas.events import TraccarPayload, TrackingEventResponse
from fleetpush.services.tracking_events import TrackingEvent, TrackingEventService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


def tracking_event_from_payload(payload: TraccarPayload) -> TrackingEvent:
    event, device = payload.event, payload.device
    if event is None or device is None or event.device_id is None:
        raise ValidationError("Event or device data missing from request body")
    return TrackingEvent(
        event_type=event.type,
        device_id=event.device_id,
        device_name=device.name,
        attributes=event.attributes or {},
        event_time=event.event_time,
    )


@router.post("/traccar-event", response_model=TrackingEventResponse)
async def traccar_event(
    payload: TraccarPayload,
    settings: Settings = Depends(get_settings),
    service: TrackingEventService = Depends(get_tracking_event_service),
):
    """Receive a Traccar event and notify the device owner."""
    event = tracking_event_from_payload(payload)

    if settings.event_dispatch_mode == "queue":
        from fleetpush.tasks.notification_tasks import dispatch_tracking_event

        dispatch_tracking_event.delay(payload.model_dump(mode="json", by_alias=True))
        logger.info("Queued event %s for device %s", event.event_type, event.device_id)
        return TrackingEventResponse(success=True, queued=True)

    report = await service.handle(event)
    response = TrackingEventResponse(
        success=dispatch_status_code(report) == 200,
        sent=report.sent,
        failed=report.failed,
        invalid_removed=report.invalid_removed,
    )
    if not response.success:
        return JSONResponse(status_code=500, content=response.model_dump(by_alias=True))
    return response
