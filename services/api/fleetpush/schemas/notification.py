"""Notification dispatch schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fleetpush.services.notification_dispatcher import DispatchReport


class NotificationPayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)
    body: str = Field(..., min_length=1, max_length=4096)


class SendNotificationRequest(BaseModel):
    email: str | None = None
    token: str | None = None
    notification: NotificationPayload
    data: dict[str, Any] | None = None


class DispatchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    sent: int
    failed: int
    invalid_removed: int = Field(0, alias="invalidRemoved")
    prune_error: str | None = Field(None, alias="pruneError")
    results: list[dict[str, Any]] | None = None

    @classmethod
    def from_report(cls, report: DispatchReport, include_results: bool = False) -> "DispatchResponse":
        return cls(
            success=not report.all_failed or report.all_failures_permanent,
            sent=report.sent,
            failed=report.failed,
            invalid_removed=report.invalid_removed,
            prune_error=report.prune_error,
            results=report.results() if include_results else None,
        )
