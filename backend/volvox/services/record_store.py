"""Record store client: document-style CRUD over the documents table.

Each record is a plain dict of its fields plus the server-owned keys
``id``, ``createdAt`` and ``updatedAt``. Writes ignore the server-owned keys.
"""
import logging
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import select, delete as sql_delete
from sqlalchemy.ext.asyncio import AsyncSession

from volvox.models.document import Document

logger = logging.getLogger(__name__)

SERVER_FIELDS = ("id", "createdAt", "updatedAt")


class RecordNotFoundError(LookupError):
    """Raised when a record id does not exist in the requested collection."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"Record '{record_id}' not found in '{collection}'")
        self.collection = collection
        self.record_id = record_id


def _writable(fields: dict) -> dict:
    return {k: v for k, v in fields.items() if k not in SERVER_FIELDS}


def _to_record(doc: Document) -> dict:
    return {
        **(doc.data or {}),
        "id": doc.id,
        "createdAt": doc.created_at,
        "updatedAt": doc.updated_at,
    }


def _sort_kind(value: Any) -> Optional[type]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float
    if isinstance(value, (str, datetime)):
        return type(value)
    return None


def sort_records(records: list[dict], order_by: Iterable[tuple[str, str]]) -> list[dict]:
    """Sort records by (field, "asc"|"desc") pairs.

    Missing values sort last. So do values that cannot be compared with the
    rest of the field: lists, dicts, booleans, and strings when numbers are
    present.
    """
    ordered = list(records)
    # Stable multi-pass: least significant key first
    for field, direction in reversed(list(order_by)):
        if direction not in ("asc", "desc"):
            raise ValueError(f"Unknown sort direction: {direction}")
        kinds = [_sort_kind(r.get(field)) for r in ordered]
        kind = float if float in kinds else next((k for k in kinds if k is not None), None)
        present = [r for r, k in zip(ordered, kinds) if k is not None and k is kind]
        missing = [r for r, k in zip(ordered, kinds) if k is None or k is not kind]
        present.sort(key=lambda r: r[field], reverse=direction == "desc")
        ordered = present + missing
    return ordered


class RecordStore:
    """Thin wrapper around database access for document collections."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load(self, collection: str, record_id: str) -> Optional[Document]:
        result = await self.session.execute(
            select(Document)
            .where(Document.collection == collection, Document.id == record_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        collection: str,
        order_by: Optional[list[tuple[str, str]]] = None,
    ) -> list[dict]:
        """Return every record in a collection, optionally sorted."""
        result = await self.session.execute(
            select(Document)
            .where(Document.collection == collection)
            .execution_options(populate_existing=True)
        )
        records = [_to_record(doc) for doc in result.scalars().all()]
        if order_by:
            records = sort_records(records, order_by)
        return records

    async def get(self, collection: str, record_id: str) -> dict:
        doc = await self._load(collection, record_id)
        if doc is None:
            raise RecordNotFoundError(collection, record_id)
        return _to_record(doc)

    async def create(self, collection: str, fields: dict) -> str:
        """Insert a record and return its generated id."""
        doc = Document(collection=collection, data=_writable(fields))
        self.session.add(doc)
        await self.session.commit()
        await self.session.refresh(doc)
        logger.info(f"Created record {doc.id} in {collection}")
        return doc.id

    async def update(self, collection: str, record_id: str, fields: dict) -> None:
        """Merge fields into an existing record."""
        doc = await self._load(collection, record_id)
        if doc is None:
            raise RecordNotFoundError(collection, record_id)
        doc.data = {**(doc.data or {}), **_writable(fields)}
        await self.session.commit()

    async def delete(self, collection: str, record_id: str) -> None:
        """Delete a record. Deleting a missing record is a no-op."""
        await self.session.execute(
            sql_delete(Document).where(
                Document.collection == collection, Document.id == record_id
            )
        )
        await self.session.commit()
        logger.info(f"Deleted record {record_id} from {collection}")

    async def batch_update(
        self,
        collection: str,
        updates: Sequence[tuple[str, dict[str, Any]]],
    ) -> None:
        """Apply several field merges in one transaction.

        All-or-nothing: if any id is missing nothing is written.
        """
        if not updates:
            return
        ids = [record_id for record_id, _ in updates]
        try:
            result = await self.session.execute(
                select(Document)
                .where(Document.collection == collection, Document.id.in_(ids))
                .execution_options(populate_existing=True)
            )
            docs = {doc.id: doc for doc in result.scalars().all()}
            for record_id, fields in updates:
                doc = docs.get(record_id)
                if doc is None:
                    raise RecordNotFoundError(collection, record_id)
                doc.data = {**(doc.data or {}), **_writable(fields)}
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info(f"Batch updated {len(updates)} record(s) in {collection}")
