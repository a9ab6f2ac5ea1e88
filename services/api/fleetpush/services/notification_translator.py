"""Notification copy for Traccar tracking events."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class EventType(str, Enum):
    ONLINE = "deviceOnline"
    OFFLINE = "deviceOffline"
    MOVING = "deviceMoving"
    STOPPED = "deviceStopped"
    IGNITION_ON = "ignitionOn"
    IGNITION_OFF = "ignitionOff"
    GEOFENCE_ENTER = "geofenceEnter"
    GEOFENCE_EXIT = "geofenceExit"
    ALARM = "alarm"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: str) -> "EventType":
        try:
            return cls(raw)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class NotificationContent:
    title: str
    body: str


DEFAULT_GEOFENCE_NAME = "a geofence"
DEFAULT_ALARM_LABEL = "Alarm triggered"

# (title, body) templates; fields: label, geofence, alarm, event_type
_TEMPLATES: dict[EventType, tuple[str, str]] = {
    EventType.ONLINE: ("Device Online", "{label} is online."),
    EventType.OFFLINE: ("Device Offline", "{label} is offline."),
    EventType.MOVING: ("Movement Detected", "{label} started moving."),
    EventType.STOPPED: ("Device Stopped", "{label} has stopped."),
    EventType.IGNITION_ON: ("Ignition On", "Ignition of {label} was turned on."),
    EventType.IGNITION_OFF: ("Ignition Off", "Ignition of {label} was turned off."),
    EventType.GEOFENCE_ENTER: ("Geofence Entered", "{label} entered {geofence}."),
    EventType.GEOFENCE_EXIT: ("Geofence Exited", "{label} left {geofence}."),
    EventType.ALARM: ("Alarm: {alarm}", "Alarm triggered on {label}."),
    EventType.OTHER: ("Notification", "{label}: {event_type}"),
}


def device_label(device_name: str | None, device_id: Any) -> str:
    """Human name of the device, or ``Device <id>`` when it has none."""
    if device_name and device_name.strip():
        return device_name.strip()
    return f"Device {device_id}"


def translate(
    event_type: str,
    label: str,
    attributes: Mapping[str, Any] | None = None,
) -> NotificationContent:
    """Map a tracking event to notification title and body.

    Unknown event types fall back to a generic title with the raw type in the
    body.
    """
    attributes = attributes or {}
    title, body = _TEMPLATES[EventType.parse(event_type)]
    fields = {
        "label": label,
        "geofence": attributes.get("geofenceName") or DEFAULT_GEOFENCE_NAME,
        "alarm": attributes.get("alarm") or DEFAULT_ALARM_LABEL,
        "event_type": event_type,
    }
    return NotificationContent(title=title.format(**fields), body=body.format(**fields))


def build_event_data(
    event_type: str,
    device_id: Any,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, str]:
    """Data payload carried with the push; FCM requires string values."""
    data = {
        "deviceId": str(device_id),
        "eventType": event_type,
        **(extra or {}),
    }
    return {k: str(v) for k, v in data.items() if v is not None}
