import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Protocol, Tuple

from sqlalchemy import Column, DateTime, MetaData, String, Table, delete, select, text
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from catalog_sync.domain.exceptions import StoreWriteError

logger = logging.getLogger(__name__)

# SQLAlchemy core Table definition: one row per document, addressed by collection path and id.
metadata = MetaData()
documents_table = Table(
    'catalog_documents', metadata,
    Column('collection', String, primary_key=True),
    Column('document_id', String, primary_key=True),
    Column('data', JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    Column('created_at', DateTime(timezone=True), server_default=text('NOW()')),
    Column('updated_at', DateTime(timezone=True), server_default=text('NOW()')),
)


class StoredDocument(NamedTuple):
    document_id: str
    data: Dict[str, Any]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DocumentStore(Protocol):
    """Collection/document store: single documents are addressed as `collection/id`."""

    async def get(self, path: str) -> Optional[Dict[str, Any]]: ...

    async def list_collection(self, collection: str) -> List[StoredDocument]: ...

    async def set(self, path: str, value: Dict[str, Any], merge: bool = False) -> bool: ...

    async def add(self, collection: str, value: Dict[str, Any]) -> str: ...

    async def delete(self, path: str) -> bool: ...


def split_path(path: str) -> Tuple[str, str]:
    """`meta/modinfo` -> (`meta`, `modinfo`); `mods/abc123` -> (`mods`, `abc123`)."""
    collection, _, document_id = path.strip("/").rpartition("/")
    if not collection or not document_id:
        raise ValueError(f"Invalid document path: '{path}'")
    return collection, document_id


class PostgresDocumentStore:
    """
    Document store backed by a single PostgreSQL JSONB table.
    Every call is one independent statement; there are no cross-document transactions.
    """

    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url, echo=False)

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        collection, document_id = split_path(path)
        stmt = select(documents_table.c.data).where(
            documents_table.c.collection == collection,
            documents_table.c.document_id == document_id,
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(stmt)
            row = result.first()
        return dict(row.data) if row is not None else None

    async def list_collection(self, collection: str) -> List[StoredDocument]:
        stmt = (
            select(
                documents_table.c.document_id,
                documents_table.c.data,
                documents_table.c.created_at,
                documents_table.c.updated_at,
            )
            .where(documents_table.c.collection == collection.strip("/"))
            .order_by(documents_table.c.created_at, documents_table.c.document_id)
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(stmt)
            rows = result.all()
        return [StoredDocument(row.document_id, dict(row.data), row.created_at, row.updated_at) for row in rows]

    async def set(self, path: str, value: Dict[str, Any], merge: bool = False) -> bool:
        """
        Creates or replaces the document at `path`. With `merge`, top-level keys
        of `value` are merged into the existing document instead.
        """
        collection, document_id = split_path(path)
        stmt = insert(documents_table).values(collection=collection, document_id=document_id, data=value)

        if merge:
            new_data = documents_table.c.data.op('||')(stmt.excluded.data)
        else:
            new_data = stmt.excluded.data

        upsert_stmt = stmt.on_conflict_do_update(
            index_elements=['collection', 'document_id'],
            set_={'data': new_data, 'updated_at': text('NOW()')},
        )
        await self._execute(upsert_stmt, f"set {path}")
        return True

    async def add(self, collection: str, value: Dict[str, Any]) -> str:
        document_id = uuid.uuid4().hex
        stmt = insert(documents_table).values(
            collection=collection.strip("/"), document_id=document_id, data=value,
        )
        await self._execute(stmt, f"add to {collection}")
        return document_id

    async def delete(self, path: str) -> bool:
        collection, document_id = split_path(path)
        stmt = delete(documents_table).where(
            documents_table.c.collection == collection,
            documents_table.c.document_id == document_id,
        )
        result = await self._execute(stmt, f"delete {path}")
        return bool(result.rowcount)

    async def _execute(self, stmt, description: str):
        try:
            async with self.engine.begin() as conn:
                return await conn.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Document store failed to {description}: {e}")
            raise StoreWriteError(f"Failed to {description}: {e}") from e
