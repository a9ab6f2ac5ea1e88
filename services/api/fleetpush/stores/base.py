"""Document store interface used by the token registry.

A store holds one JSON-like document per key. Besides whole-document reads and
writes it exposes the atomic array primitives the registry prefers for
single-entry changes, so concurrent writers to the same key do not lose each
other's updates.
"""

from abc import ABC, abstractmethod
from typing import Any


class StoreError(Exception):
    """Raised by store implementations when the backend call fails."""


class DocumentStore(ABC):
    """Async key -> document storage with atomic array field operations."""

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Return a copy of the document, or None when absent."""

    @abstractmethod
    async def set(self, key: str, document: dict[str, Any]) -> None:
        """Create or fully overwrite the document."""

    @abstractmethod
    async def update(self, key: str, fields: dict[str, Any]) -> None:
        """Overwrite top-level fields, creating the document when absent."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete the document. Missing documents are ignored."""

    @abstractmethod
    async def array_union(self, key: str, field: str, values: list[Any]) -> None:
        """Atomically append values not already present in the array field.

        Creates the document when absent.
        """

    @abstractmethod
    async def array_remove(self, key: str, field: str, values: list[Any]) -> None:
        """Atomically remove every element equal to one of the values.

        A missing document or field is a no-op.
        """

    @abstractmethod
    async def delete_if_empty(self, key: str, field: str) -> bool:
        """Delete the document only if the array field is empty or missing.

        Returns True when the document was deleted.
        """

    async def ping(self) -> None:
        """Raise StoreError when the backend is unreachable."""
        return None

    async def close(self) -> None:
        return None
