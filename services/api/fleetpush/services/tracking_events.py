"""Turn Traccar events into push notifications for the device owner."""

import logging
from dataclasses import dataclass, field
from typing import Any

from fleetpush.exceptions import NoRecipientError, ValidationError
from fleetpush.metrics import tracking_events_total
from fleetpush.services.identity_resolver import IdentityResolver
from fleetpush.services.notification_dispatcher import DispatchReport, NotificationDispatcher
from fleetpush.services.notification_translator import (
    EventType,
    build_event_data,
    device_label,
    translate,
)
from fleetpush.services.token_registry import validate_identity

logger = logging.getLogger(__name__)


@dataclass
class TrackingEvent:
    event_type: str
    device_id: int | str
    device_name: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    event_time: str | None = None

    @property
    def label(self) -> str:
        return device_label(self.device_name, self.device_id)


class TrackingEventService:
    def __init__(self, resolver: IdentityResolver, dispatcher: NotificationDispatcher) -> None:
        self._resolver = resolver
        self._dispatcher = dispatcher

    async def handle(self, event: TrackingEvent) -> DispatchReport:
        """Resolve the owner, translate the event and dispatch it.

        Raises NoRecipientError when the device has no owner with an e-mail or
        the owner has no registered tokens.
        """
        metric_type = EventType.parse(event.event_type).value
        resolved = await self._resolver.resolve_identity(event.device_id)
        if not resolved:
            logger.info("No user found for device %s; event %s dropped", event.device_id, event.event_type)
            tracking_events_total.labels(event_type=metric_type, outcome="no_recipient").inc()
            raise NoRecipientError("No user with an email is linked to this device")
        try:
            identity = validate_identity(resolved)
        except ValidationError:
            logger.warning(
                "Owner of device %s has a malformed email; event %s dropped",
                event.device_id,
                event.event_type,
            )
            tracking_events_total.labels(event_type=metric_type, outcome="no_recipient").inc()
            raise NoRecipientError("The user linked to this device has no valid email") from None

        content = translate(event.event_type, event.label, event.attributes)
        data = build_event_data(event.event_type, event.device_id)
        logger.info("Processing event %s for device %s", event.event_type, event.device_id)

        try:
            report = await self._dispatcher.dispatch(identity, content, data)
        except NoRecipientError:
            tracking_events_total.labels(event_type=metric_type, outcome="no_recipient").inc()
            raise
        tracking_events_total.labels(event_type=metric_type, outcome="dispatched").inc()
        return report
