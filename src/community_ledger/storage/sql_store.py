"""Document store implemented on a single SQLAlchemy table."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from community_ledger.errors import (
    CapacityExceededError,
    DocumentNotFoundError,
    InfrastructureError,
    InvalidOperationError,
)
from community_ledger.models import Document
from community_ledger.storage.base import (
    DocumentSnapshot,
    WriteOp,
    apply_field_transforms,
    merge_documents,
)

__all__ = ["SqlDocumentStore"]

logger = logging.getLogger(__name__)


class SqlDocumentStore:
    """Store documents as JSON rows keyed by ``(collection, doc_id)``.

    Every primitive runs in its own transaction. ``update`` reads the row with
    ``FOR UPDATE`` so increments and unions from concurrent callers serialise.
    SQLite ignores row locks; engines from ``build_engine`` start every
    transaction with ``BEGIN IMMEDIATE`` instead.
    """

    def __init__(self, session_factory: sessionmaker[Session], *, max_batch_size: int = 500) -> None:
        if max_batch_size <= 0:
            raise ValueError("max_batch_size must be positive")
        self._session_factory = session_factory
        self.max_batch_size = max_batch_size

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        try:
            with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            logger.error("Document store request failed: %s", exc)
            raise InfrastructureError(str(exc)) from exc

    @staticmethod
    def _load(session: Session, collection: str, doc_id: str, *, lock: bool = False) -> Document | None:
        stmt = select(Document).where(
            Document.collection == collection,
            Document.doc_id == doc_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalars().first()

    @staticmethod
    def _write(session: Session, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool) -> None:
        row = session.get(Document, (collection, doc_id))
        if row is None:
            session.add(Document(collection=collection, doc_id=doc_id, data=dict(data)))
            # Flush so a later write to the same id in this batch finds the row.
            session.flush()
            return
        # Assign a new dict so the JSON column is flagged dirty.
        row.data = merge_documents(row.data, data) if merge else dict(data)

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        """Return the document, or ``None`` when it does not exist."""
        with self._transaction() as session:
            row = self._load(session, collection, doc_id)
            if row is None:
                return None
            return DocumentSnapshot(id=row.doc_id, data=dict(row.data))

    def query(
        self,
        collection: str,
        filters: Mapping[str, Any],
        *,
        limit: int | None = None,
        start_after: str | None = None,
    ) -> list[DocumentSnapshot]:
        """Return documents whose top-level fields equal every filter value.

        Results are ordered by document id; ``start_after`` skips everything up
        to and including that id, which makes the last id of a page a cursor.
        """
        stmt = select(Document).where(Document.collection == collection)
        for field_name, value in filters.items():
            stmt = stmt.where(_json_equals(field_name, value))
        if start_after is not None:
            stmt = stmt.where(Document.doc_id > start_after)
        stmt = stmt.order_by(Document.doc_id)
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._transaction() as session:
            rows = session.execute(stmt).scalars().all()
            return [DocumentSnapshot(id=row.doc_id, data=dict(row.data)) for row in rows]

    def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        """Create or replace a document; ``merge`` keeps fields not in ``data``, nested maps included."""
        with self._transaction() as session:
            self._write(session, collection, doc_id, data, merge)

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        """Apply ``fields`` to an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        with self._transaction() as session:
            row = self._load(session, collection, doc_id, lock=True)
            if row is None:
                raise DocumentNotFoundError(collection, doc_id)
            row.data = apply_field_transforms(row.data, fields)

    def batched_write(self, writes: Sequence[WriteOp]) -> None:
        """Commit ``writes`` atomically.

        Raises:
            CapacityExceededError: If the batch is larger than ``max_batch_size``;
                nothing is written in that case.
        """
        if len(writes) > self.max_batch_size:
            raise CapacityExceededError(len(writes), self.max_batch_size)
        if not writes:
            return
        with self._transaction() as session:
            for op in writes:
                self._write(session, op.collection, op.doc_id, op.data, op.merge)


def _json_equals(field_name: str, value: Any) -> Any:
    element = Document.data[field_name]
    # bool before int: bool is an int subclass.
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    if isinstance(value, str):
        return element.as_string() == value
    raise InvalidOperationError(f"Unsupported filter value for {field_name!r}: {value!r}")
