"""Resolve the owning user's identity for a Traccar device."""

import logging
from typing import Any, Protocol

import httpx

from fleetpush.config import Settings
from fleetpush.exceptions import ValidationError
from fleetpush.services.token_registry import validate_identity

logger = logging.getLogger(__name__)


class IdentityResolver(Protocol):
    async def resolve_identity(self, device_id: Any) -> str | None:
        """Return the identity that owns ``device_id``, or None if unknown."""
        ...


class TraccarIdentityResolver:
    """Look up the device owner through the Traccar REST API.

    ``GET /api/users?deviceId=<id>`` returns the users linked to the device;
    the first one with an e-mail is the owner. Every failure is logged and
    reported as "not found".
    """

    def __init__(
        self,
        base_url: str,
        email: str,
        password: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(email, password)
        self._timeout = timeout
        self._transport = transport

    async def resolve_identity(self, device_id: Any) -> str | None:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                auth=self._auth,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(
                    "/api/users",
                    params={"deviceId": str(device_id)},
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException:
            logger.error("Traccar user lookup timed out for device %s", device_id)
            return None
        except httpx.HTTPError as e:
            logger.error("Traccar user lookup failed for device %s: %s", device_id, e)
            return None

        if response.status_code != 200:
            logger.warning(
                "Traccar returned %d for device %s: %s",
                response.status_code,
                device_id,
                response.text[:200],
            )
            return None

        try:
            users = response.json()
        except ValueError:
            logger.warning("Traccar returned a non-JSON body for device %s", device_id)
            return None

        if isinstance(users, list):
            for user in users:
                email = user.get("email") if isinstance(user, dict) else None
                if not email:
                    continue
                try:
                    return validate_identity(email)
                except ValidationError:
                    logger.warning("Skipping Traccar user with malformed email for device %s", device_id)
        logger.info("No Traccar user with an email for device %s", device_id)
        return None


class UnconfiguredResolver:
    """Stand-in used when the Traccar API credentials are missing."""

    async def resolve_identity(self, device_id: Any) -> str | None:
        logger.error("Traccar API is not configured; cannot resolve device %s", device_id)
        return None


def get_identity_resolver(settings: Settings) -> IdentityResolver:
    if not settings.traccar_configured:
        logger.warning("Traccar API URL or credentials missing; device owners cannot be resolved")
        return UnconfiguredResolver()
    return TraccarIdentityResolver(
        base_url=settings.traccar_api_url,
        email=settings.traccar_api_email,
        password=settings.traccar_api_password.get_secret_value(),
        timeout=settings.traccar_timeout_seconds,
    )
