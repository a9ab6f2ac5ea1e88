"""Firestore-backed document store."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from fleetpush.firebase import get_firebase_app
from fleetpush.stores.base import DocumentStore, StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FirestoreDocumentStore(DocumentStore):
    """Store documents in a Firestore collection.

    The Firestore client is synchronous, so every call runs in the default
    executor to keep the event loop free.
    """

    def __init__(self, client, collection: str) -> None:
        self._client = client
        self._collection = collection

    def _doc(self, key: str):
        return self._client.collection(self._collection).document(key)

    async def _run(self, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Firestore call failed: {e}") from e

    async def get(self, key: str) -> dict[str, Any] | None:
        def _get():
            snap = self._doc(key).get()
            return snap.to_dict() if snap.exists else None

        return await self._run(_get)

    async def set(self, key: str, document: dict[str, Any]) -> None:
        await self._run(lambda: self._doc(key).set(document))

    async def update(self, key: str, fields: dict[str, Any]) -> None:
        await self._run(lambda: self._doc(key).set(fields, merge=True))

    async def delete(self, key: str) -> None:
        await self._run(lambda: self._doc(key).delete())

    async def array_union(self, key: str, field: str, values: list[Any]) -> None:
        await self._run(
            lambda: self._doc(key).set({field: firestore.ArrayUnion(values)}, merge=True)
        )

    async def array_remove(self, key: str, field: str, values: list[Any]) -> None:
        def _remove():
            try:
                self._doc(key).update({field: firestore.ArrayRemove(values)})
            except google_exceptions.NotFound:
                logger.debug("array_remove on missing document %s", key)

        await self._run(_remove)

    async def delete_if_empty(self, key: str, field: str) -> bool:
        def _delete_if_empty() -> bool:
            ref = self._doc(key)
            snap = ref.get()
            if not snap.exists:
                return False
            if (snap.to_dict() or {}).get(field):
                return False
            # Only delete the exact version we inspected
            option = self._client.write_option(last_update_time=snap.update_time)
            try:
                ref.delete(option=option)
            except google_exceptions.FailedPrecondition:
                logger.info("Document %s changed before empty-record delete; kept", key)
                return False
            return True

        return await self._run(_delete_if_empty)

    async def ping(self) -> None:
        await self._run(lambda: self._doc("__health__").get())


def get_firestore_store(credentials_path: str, collection: str) -> FirestoreDocumentStore:
    app = get_firebase_app(credentials_path)
    return FirestoreDocumentStore(firestore.client(app), collection)
