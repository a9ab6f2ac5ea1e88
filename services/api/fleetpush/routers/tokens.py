"""Push token registration, lookup and removal."""

import logging

from fastapi import APIRouter, Depends, Query

from fleetpush.dependencies import get_token_registry
from fleetpush.metrics import token_registrations_total, token_unregistrations_total
from fleetpush.schemas.tokens import (
    TokenListResponse,
    TokenLookupResponse,
    TokenRegisterRequest,
    TokenRegisterResponse,
    TokenUnregisterRequest,
    TokenUnregisterResponse,
)
from fleetpush.services.token_registry import TokenRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tokens", tags=["tokens"])


@router.post("", response_model=TokenRegisterResponse)
async def register_token(
    body: TokenRegisterRequest,
    registry: TokenRegistry = Depends(get_token_registry),
):
    """Register a token for a user's device slot.

    Re-registering the same token for the same slot is a no-op; a different
    token replaces the slot's previous one.
    """
    device_id = str(body.device_id) if body.device_id is not None else None
    result = await registry.register(body.email, body.fcm_token, device_id)
    token_registrations_total.labels(result=result.value).inc()
    return TokenRegisterResponse(success=True, result=result.value)


@router.get("", response_model=TokenLookupResponse)
async def check_token(
    email: str = Query(..., min_length=1),
    device_id: str | None = Query(None, alias="deviceId"),
    registry: TokenRegistry = Depends(get_token_registry),
):
    """Report whether the user (or one device slot) has a token."""
    token = await registry.first_token(email, device_id)
    return TokenLookupResponse(has_valid_token=token is not None, token=token)


@router.get("/all", response_model=TokenListResponse)
async def list_tokens(
    email: str = Query(..., min_length=1),
    registry: TokenRegistry = Depends(get_token_registry),
):
    return TokenListResponse(tokens=await registry.lookup(email))


@router.delete("", response_model=TokenUnregisterResponse)
async def unregister_token(
    body: TokenUnregisterRequest,
    registry: TokenRegistry = Depends(get_token_registry),
):
    """Remove a token by device slot or by exact token value."""
    device_id = str(body.device_id) if body.device_id is not None else None
    result = await registry.unregister(body.email, device_slot=device_id, token=body.selected_token)
    token_unregistrations_total.labels(removed=str(result.removed).lower()).inc()
    return TokenUnregisterResponse(success=True, removed=result.removed)
