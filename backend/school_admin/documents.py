import logging
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .errors import CollaboratorError
from .models import DocumentRecord, new_document_id


logger = logging.getLogger(__name__)


def _as_record(row: DocumentRecord) -> dict[str, Any]:
    record = dict(row.data or {})
    record["id"] = row.doc_id
    return record


def _matches(data: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    if not filters:
        return True
    return all(data.get(field) == value for field, value in filters.items())


class SqlDocumentStore:
    """Named collections of JSON documents in a single SQL table.

    Field-equality filters are evaluated after loading the collection, which keeps
    the adapter portable between SQLite and Postgres JSON types.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def list(self, collection: str, filters: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        encoded = jsonable_encoder(filters) if filters else None
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(DocumentRecord)
                    .filter(DocumentRecord.collection == collection)
                    .order_by(DocumentRecord.pk)
                    .all()
                )
        except SQLAlchemyError as exc:
            raise CollaboratorError(f"Failed to fetch {collection}") from exc
        return [_as_record(row) for row in rows if _matches(row.data or {}, encoded)]

    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        try:
            with self._session_factory() as db:
                row = self._find(db, collection, doc_id)
        except SQLAlchemyError as exc:
            raise CollaboratorError(f"Failed to fetch {collection}/{doc_id}") from exc
        return _as_record(row) if row else None

    async def add(self, collection: str, fields: dict[str, Any]) -> str:
        data = jsonable_encoder({k: v for k, v in fields.items() if k != "id"})
        doc_id = new_document_id()
        try:
            with self._session_factory() as db:
                db.add(DocumentRecord(collection=collection, doc_id=doc_id, data=data))
                db.commit()
        except SQLAlchemyError as exc:
            raise CollaboratorError(f"Failed to add to {collection}") from exc
        logger.info(f"Added {collection}/{doc_id}")
        return doc_id

    async def set(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        data = jsonable_encoder({k: v for k, v in fields.items() if k != "id"})
        try:
            with self._session_factory() as db:
                row = self._find(db, collection, doc_id)
                if row is None:
                    db.add(DocumentRecord(collection=collection, doc_id=doc_id, data=data))
                else:
                    # Reassign so the JSON column is flagged dirty.
                    row.data = {**(row.data or {}), **data}
                db.commit()
        except SQLAlchemyError as exc:
            raise CollaboratorError(f"Failed to write {collection}/{doc_id}") from exc

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            with self._session_factory() as db:
                row = self._find(db, collection, doc_id)
                if row is not None:
                    db.delete(row)
                    db.commit()
        except SQLAlchemyError as exc:
            raise CollaboratorError(f"Failed to delete {collection}/{doc_id}") from exc

    @staticmethod
    def _find(db, collection: str, doc_id: str) -> Optional[DocumentRecord]:
        return (
            db.query(DocumentRecord)
            .filter(DocumentRecord.collection == collection, DocumentRecord.doc_id == doc_id)
            .first()
        )
