"""Traccar event forwarding payload."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TraccarDevice(BaseModel):
    id: int | str
    name: str | None = None


class TraccarEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    type: str = "unknown"
    device_id: int | str | None = Field(None, alias="deviceId")
    event_time: str | None = Field(None, alias="eventTime")
    attributes: dict[str, Any] | None = None


class TraccarPayload(BaseModel):
    event: TraccarEvent | None = None
    device: TraccarDevice | None = None
    position: dict[str, Any] | None = None


class TrackingEventResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    queued: bool = False
    sent: int = 0
    failed: int = 0
    invalid_removed: int = Field(0, alias="invalidRemoved")
