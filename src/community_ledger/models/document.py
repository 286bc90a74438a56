# src/community_ledger/models/document.py
"""SQLAlchemy model backing the document store."""

from typing import Any

from sqlalchemy import JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from community_ledger.db.session import Base


class Document(Base):
    """One schemaless document addressed by ``(collection, doc_id)``.

    Communities and memberships are both stored here; the collection name
    plays the role of a table and ``data`` holds the camelCase document body.
    """

    __tablename__ = "document"

    collection: Mapped[str] = mapped_column(Text, primary_key=True)
    doc_id: Mapped[str] = mapped_column(Text, primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
