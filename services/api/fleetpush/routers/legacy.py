"""Endpoint shapes used by already-deployed web and mobile clients.

Each route only translates its request and response format; all behavior
lives in the token registry.
"""

import logging

from fastapi import APIRouter, Depends, Query

from fleetpush.dependencies import get_token_registry
from fleetpush.metrics import token_registrations_total, token_unregistrations_total
from fleetpush.schemas.tokens import TokenRegisterRequest, TokenUnregisterRequest
from fleetpush.services.token_registry import RegistrationResult, TokenRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["legacy"])

_SAVE_MESSAGES = {
    RegistrationResult.INSERTED: "New token registered for this email.",
    RegistrationResult.REPLACED: "Token updated for this email.",
    RegistrationResult.UNCHANGED: "Token was already registered for this email.",
}


def _device_id(raw: str | int | None) -> str | None:
    return str(raw) if raw is not None else None


@router.post("/savetoken")
async def save_token(
    body: TokenRegisterRequest,
    registry: TokenRegistry = Depends(get_token_registry),
):
    result = await registry.register(body.email, body.fcm_token, _device_id(body.device_id))
    token_registrations_total.labels(result=result.value).inc()
    return {
        "message": _SAVE_MESSAGES[result],
        "registered": True,
        "email": body.email,
        "tokenPrefix": body.fcm_token[:10] + "...",
    }


@router.post("/notifications-register")
async def notifications_register(
    body: TokenRegisterRequest,
    registry: TokenRegistry = Depends(get_token_registry),
):
    result = await registry.register(body.email, body.fcm_token, _device_id(body.device_id))
    token_registrations_total.labels(result=result.value).inc()
    return {"registered": True, "message": "Token registered for background notifications"}


@router.post("/delete-token")
async def delete_token(
    body: TokenUnregisterRequest,
    registry: TokenRegistry = Depends(get_token_registry),
):
    result = await registry.unregister(body.email, token=body.selected_token)
    token_unregistrations_total.labels(removed=str(result.removed).lower()).inc()
    if result.removed:
        return {"message": "Token unregistered.", "removed": True}
    return {"message": "Token or email not found, nothing to do.", "removed": False}


@router.get("/check-user-token")
async def check_user_token(
    email: str = Query(..., min_length=1),
    registry: TokenRegistry = Depends(get_token_registry),
):
    return {"tokens": await registry.lookup(email)}


@router.get("/notifications")
async def notifications_check(
    email: str = Query(..., min_length=1),
    device_id: str | None = Query(None, alias="deviceId"),
    registry: TokenRegistry = Depends(get_token_registry),
):
    token = await registry.first_token(email, device_id)
    return {"hasValidToken": token is not None, "token": token}


@router.post("/notifications")
async def notifications_register_device(
    body: TokenRegisterRequest,
    registry: TokenRegistry = Depends(get_token_registry),
):
    result = await registry.register(body.email, body.fcm_token, _device_id(body.device_id))
    token_registrations_total.labels(result=result.value).inc()
    return {"success": True}


@router.delete("/notifications")
async def notifications_delete(
    body: TokenUnregisterRequest,
    registry: TokenRegistry = Depends(get_token_registry),
):
    # deviceId takes precedence over token in this shape
    device_id = _device_id(body.device_id)
    if device_id is not None:
        result = await registry.unregister(body.email, device_slot=device_id)
    else:
        result = await registry.unregister(body.email, token=body.selected_token)
    token_unregistrations_total.labels(removed=str(result.removed).lower()).inc()
    return {"success": True, "removed": result.removed}
