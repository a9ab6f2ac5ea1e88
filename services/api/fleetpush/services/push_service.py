"""FCM multicast push transport."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Mapping, Protocol, Sequence

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging
from google.auth import exceptions as google_auth_exceptions

from fleetpush.config import Settings
from fleetpush.exceptions import DeliveryUnavailable
from fleetpush.firebase import get_firebase_app
from fleetpush.services.notification_translator import NotificationContent

logger = logging.getLogger(__name__)

# FCM rejects multicast messages with more tokens than this
FCM_MAX_MULTICAST_TOKENS = 500


class ErrorKind(str, Enum):
    NONE = "none"
    INVALID_TOKEN = "invalidToken"
    NOT_REGISTERED = "notRegistered"
    OTHER = "other"


@dataclass(frozen=True)
class DeliveryOutcome:
    success: bool
    error_kind: ErrorKind = ErrorKind.NONE
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def delivered(cls, message_id: str | None = None) -> "DeliveryOutcome":
        return cls(success=True, message_id=message_id)

    @classmethod
    def failed(cls, error_kind: ErrorKind, code: str | None = None, message: str | None = None) -> "DeliveryOutcome":
        return cls(success=False, error_kind=error_kind, error_code=code, error_message=message)


class PushTransport(Protocol):
    async def send_multicast(
        self,
        tokens: Sequence[str],
        notification: NotificationContent,
        data: Mapping[str, str] | None = None,
    ) -> list[DeliveryOutcome]:
        """Send to every token; one outcome per token, in input order."""
        ...


def classify_send_exception(exc: BaseException | None) -> ErrorKind:
    """Map a per-token FCM exception to an ErrorKind."""
    if exc is None:
        return ErrorKind.OTHER
    if isinstance(exc, messaging.UnregisteredError):
        return ErrorKind.NOT_REGISTERED
    if isinstance(exc, firebase_exceptions.InvalidArgumentError):
        if "registration token" in str(exc).lower():
            return ErrorKind.INVALID_TOKEN
    return ErrorKind.OTHER


def outcome_from_response(response) -> DeliveryOutcome:
    if response.success:
        return DeliveryOutcome.delivered(response.message_id)
    exc = response.exception
    return DeliveryOutcome.failed(
        classify_send_exception(exc),
        code=getattr(exc, "code", None),
        message=str(exc) if exc is not None else None,
    )


class FcmPushTransport:
    """Send multicast notifications through Firebase Cloud Messaging."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._fcm_app = None

    def _init_fcm(self):
        """Initialize Firebase Admin SDK (lazy)."""
        if self._fcm_app is not None:
            return self._fcm_app
        try:
            self._fcm_app = get_firebase_app(self._settings.fcm_credentials_json)
        except (ValueError, OSError, firebase_exceptions.FirebaseError) as e:
            logger.error("Failed to initialize FCM: %s", e)
            raise DeliveryUnavailable("FCM is not configured") from e
        return self._fcm_app

    def _webpush_link(self, data: Mapping[str, str]) -> str | None:
        base = self._settings.webpush_base_url
        if not base:
            return None
        device_id = data.get("deviceId")
        return f"{base}/device/{device_id}" if device_id else base

    def build_message(
        self,
        tokens: Sequence[str],
        notification: NotificationContent,
        data: Mapping[str, str] | None = None,
    ) -> messaging.MulticastMessage:
        s = self._settings
        data = {k: str(v) for k, v in (data or {}).items()}
        link = self._webpush_link(data)
        return messaging.MulticastMessage(
            tokens=list(tokens),
            notification=messaging.Notification(title=notification.title, body=notification.body),
            data=data,
            android=messaging.AndroidConfig(
                priority=s.fcm_android_priority,
                notification=messaging.AndroidNotification(
                    channel_id=s.fcm_android_channel_id,
                    sound=s.push_sound,
                    click_action=s.fcm_click_action or None,
                ),
            ),
            apns=messaging.APNSConfig(
                headers={"apns-priority": s.apns_priority},
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(sound=s.push_sound, badge=s.apns_badge),
                ),
            ),
            webpush=messaging.WebpushConfig(
                notification=messaging.WebpushNotification(
                    icon=s.webpush_icon,
                    badge=s.webpush_badge,
                    vibrate=[200, 100, 200],
                ),
                fcm_options=messaging.WebpushFCMOptions(link=link) if link else None,
            ),
        )

    async def _send_chunk(self, message: messaging.MulticastMessage, app) -> list[DeliveryOutcome]:
        loop = asyncio.get_running_loop()
        try:
            batch = await asyncio.wait_for(
                loop.run_in_executor(None, partial(messaging.send_each_for_multicast, message, app=app)),
                timeout=self._settings.push_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error("FCM multicast timed out after %ss", self._settings.push_timeout_seconds)
            raise DeliveryUnavailable("Push gateway timed out") from e
        except firebase_exceptions.FirebaseError as e:
            logger.error("FCM multicast failed: %s", e)
            raise DeliveryUnavailable(f"Push gateway error: {e.code}") from e
        except google_auth_exceptions.GoogleAuthError as e:
            logger.error("FCM credentials rejected: %s", e)
            raise DeliveryUnavailable("Push gateway credentials unavailable") from e
        return [outcome_from_response(r) for r in batch.responses]

    async def send_multicast(
        self,
        tokens: Sequence[str],
        notification: NotificationContent,
        data: Mapping[str, str] | None = None,
    ) -> list[DeliveryOutcome]:
        if not tokens:
            return []
        app = self._init_fcm()
        outcomes: list[DeliveryOutcome] = []
        for start in range(0, len(tokens), FCM_MAX_MULTICAST_TOKENS):
            chunk = tokens[start : start + FCM_MAX_MULTICAST_TOKENS]
            message = self.build_message(chunk, notification, data)
            try:
                outcomes.extend(await self._send_chunk(message, app))
            except DeliveryUnavailable as e:
                if not outcomes:
                    raise
                # earlier chunks were already delivered; keep their outcomes
                logger.warning("FCM chunk at offset %d failed: %s", start, e)
                outcomes.extend(
                    DeliveryOutcome.failed(ErrorKind.OTHER, code="unavailable", message=str(e))
                    for _ in tokens[start:]
                )
                break
        sent = sum(1 for o in outcomes if o.success)
        logger.info("FCM multicast: %d sent, %d failed", sent, len(outcomes) - sent)
        return outcomes


def get_push_transport(settings: Settings) -> FcmPushTransport:
    return FcmPushTransport(settings)
