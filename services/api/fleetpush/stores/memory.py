"""In-process document store for local development and tests."""

import copy
from typing import Any

from fleetpush.stores.base import DocumentStore


class MemoryDocumentStore(DocumentStore):
    """Dictionary-backed store.

    Every method completes without awaiting, so each call is atomic with
    respect to other coroutines on the same event loop.
    """

    def __init__(self, documents: dict[str, dict[str, Any]] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = copy.deepcopy(documents or {})

    async def get(self, key: str) -> dict[str, Any] | None:
        doc = self._documents.get(key)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, key: str, document: dict[str, Any]) -> None:
        self._documents[key] = copy.deepcopy(document)

    async def update(self, key: str, fields: dict[str, Any]) -> None:
        doc = self._documents.setdefault(key, {})
        doc.update(copy.deepcopy(fields))

    async def delete(self, key: str) -> None:
        self._documents.pop(key, None)

    async def array_union(self, key: str, field: str, values: list[Any]) -> None:
        doc = self._documents.setdefault(key, {})
        current = doc.setdefault(field, [])
        for value in values:
            if value not in current:
                current.append(copy.deepcopy(value))

    async def array_remove(self, key: str, field: str, values: list[Any]) -> None:
        doc = self._documents.get(key)
        if doc is None or field not in doc:
            return
        doc[field] = [item for item in doc[field] if item not in values]

    async def delete_if_empty(self, key: str, field: str) -> bool:
        doc = self._documents.get(key)
        if doc is None or doc.get(field):
            return False
        del self._documents[key]
        return True

    def keys(self) -> list[str]:
        return list(self._documents)
