"""SQLAlchemy-backed document store (one JSON row per identity)."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from fleetpush.models.token_document import TokenDocument
from fleetpush.stores.base import DocumentStore, StoreError

logger = logging.getLogger(__name__)


class SqlDocumentStore(DocumentStore):
    """Store documents as JSON rows.

    Array operations lock the row (``SELECT ... FOR UPDATE``) for the length of
    one transaction, which gives them the same atomicity as Firestore's
    array transforms.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            raise StoreError(f"Database call failed: {e}") from e

    async def _locked(self, session: AsyncSession, key: str) -> TokenDocument | None:
        result = await session.execute(
            select(TokenDocument).where(TokenDocument.identity == key).with_for_update()
        )
        return result.scalar_one_or_none()

    async def get(self, key: str) -> dict[str, Any] | None:
        async with self._transaction() as session:
            row = await session.get(TokenDocument, key)
            return dict(row.document) if row is not None else None

    async def set(self, key: str, document: dict[str, Any]) -> None:
        async with self._transaction() as session:
            row = await self._locked(session, key)
            if row is None:
                session.add(TokenDocument(identity=key, document=dict(document)))
            else:
                row.document = dict(document)

    async def update(self, key: str, fields: dict[str, Any]) -> None:
        async with self._transaction() as session:
            row = await self._locked(session, key)
            if row is None:
                session.add(TokenDocument(identity=key, document=dict(fields)))
            else:
                # Assign a new dict so the JSON column is flagged dirty
                row.document = {**row.document, **fields}

    async def delete(self, key: str) -> None:
        async with self._transaction() as session:
            await session.execute(delete(TokenDocument).where(TokenDocument.identity == key))

    async def array_union(self, key: str, field: str, values: list[Any]) -> None:
        async with self._transaction() as session:
            row = await self._locked(session, key)
            if row is None:
                deduped: list[Any] = []
                for value in values:
                    if value not in deduped:
                        deduped.append(value)
                session.add(TokenDocument(identity=key, document={field: deduped}))
                return
            current = list(row.document.get(field) or [])
            for value in values:
                if value not in current:
                    current.append(value)
            row.document = {**row.document, field: current}

    async def array_remove(self, key: str, field: str, values: list[Any]) -> None:
        async with self._transaction() as session:
            row = await self._locked(session, key)
            if row is None or field not in row.document:
                return
            kept = [item for item in row.document[field] if item not in values]
            row.document = {**row.document, field: kept}

    async def delete_if_empty(self, key: str, field: str) -> bool:
        async with self._transaction() as session:
            row = await self._locked(session, key)
            if row is None or row.document.get(field):
                return False
            await session.delete(row)
            return True

    async def ping(self) -> None:
        async with self._transaction() as session:
            await session.execute(text("SELECT 1"))

    async def close(self) -> None:
        await self._engine.dispose()


def get_sql_store(database_url: str, echo: bool = False) -> SqlDocumentStore:
    engine = create_async_engine(database_url, echo=echo, pool_pre_ping=True)
    return SqlDocumentStore(engine)
