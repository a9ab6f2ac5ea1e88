"""Send a notification to a user's devices or to a single token."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from fleetpush.dependencies import get_dispatcher
from fleetpush.exceptions import ValidationError
from fleetpush.schemas.notification import DispatchResponse, SendNotificationRequest
from fleetpush.services.notification_dispatcher import DispatchReport, NotificationDispatcher
from fleetpush.services.notification_translator import NotificationContent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def dispatch_status_code(report: DispatchReport) -> int:
    """200 unless every token failed and at least one failure was transient."""
    if report.all_failed and not report.all_failures_permanent:
        return 500
    return 200


def dispatch_response(report: DispatchReport, include_results: bool = False) -> JSONResponse:
    body = DispatchResponse.from_report(report, include_results=include_results)
    return JSONResponse(
        status_code=dispatch_status_code(report),
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


@router.post("/send", response_model=DispatchResponse)
async def send_notification(
    body: SendNotificationRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Send to every token of ``email`` or directly to ``token``.

    ``email`` wins when both are given.
    """
    content = NotificationContent(title=body.notification.title, body=body.notification.body)
    if body.email:
        if body.token:
            logger.warning("Both email and token supplied; using email")
        report = await dispatcher.dispatch(body.email, content, body.data)
    elif body.token:
        report = await dispatcher.dispatch_to_token(body.token, content, body.data)
    else:
        raise ValidationError("Either email or token is required")
    return dispatch_response(report, include_results=True)
