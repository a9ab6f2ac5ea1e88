"""FastAPI dependency injection."""

import logging

from fastapi import Depends

from fleetpush.config import Settings, get_settings
from fleetpush.services.identity_resolver import IdentityResolver, get_identity_resolver
from fleetpush.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from fleetpush.services.token_registry import TokenRegistry
from fleetpush.services.tracking_events import TrackingEventService
from fleetpush.stores.base import DocumentStore

logger = logging.getLogger(__name__)

# Document store (initialized in lifespan, or lazily on first request)
_store: DocumentStore | None = None


def build_document_store(settings: Settings) -> DocumentStore:
    """Create the configured token store backend."""
    backend = settings.token_store_backend
    if backend == "memory":
        from fleetpush.stores.memory import MemoryDocumentStore

        return MemoryDocumentStore()
    if backend == "sql":
        from fleetpush.stores.sql import get_sql_store

        return get_sql_store(settings.database_url, echo=settings.debug)
    from fleetpush.stores.firestore import get_firestore_store

    return get_firestore_store(settings.fcm_credentials_json, settings.token_collection)


def init_store(settings: Settings) -> DocumentStore:
    """Initialize the document store. Called from lifespan."""
    global _store
    _store = build_document_store(settings)
    logger.info("Token store backend: %s", settings.token_store_backend)
    return _store


async def shutdown_store() -> None:
    """Release store resources. Called from lifespan."""
    global _store
    if _store is not None:
        await _store.close()
        _store = None


def get_document_store(settings: Settings = Depends(get_settings)) -> DocumentStore:
    global _store
    if _store is None:
        _store = build_document_store(settings)
    return _store


def get_token_registry(
    settings: Settings = Depends(get_settings),
    store: DocumentStore = Depends(get_document_store),
) -> TokenRegistry:
    return TokenRegistry(store, timeout=settings.store_timeout_seconds)


def get_dispatcher(
    settings: Settings = Depends(get_settings),
    registry: TokenRegistry = Depends(get_token_registry),
) -> NotificationDispatcher:
    return get_notification_dispatcher(settings, registry)


def get_resolver(settings: Settings = Depends(get_settings)) -> IdentityResolver:
    return get_identity_resolver(settings)


def get_tracking_event_service(
    resolver: IdentityResolver = Depends(get_resolver),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> TrackingEventService:
    return TrackingEventService(resolver, dispatcher)
