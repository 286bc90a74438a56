"""Shared Pydantic schemas for stored records."""
from __future__ import annotations

from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Cursor(BaseModel):
    """Opaque pagination cursor returned by list operations."""

    after: str = Field(..., description="Id of the last record on the previous page.")


class DocumentModel(BaseModel):
    """Base for records persisted as camelCase documents.

    The ``id`` field is the document key and is never written into the body.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """Return the JSON-safe document body for storage."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})

    def to_embedded(self) -> dict[str, Any]:
        """Return the body for nesting inside another document, ``id`` included."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> Self:
        """Rebuild a record from a stored document body."""
        return cls.model_validate({**data, "id": doc_id})
