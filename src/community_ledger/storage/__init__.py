"""Document storage primitives used by the ledger services."""

from .base import (
    ArrayUnion,
    DocumentSnapshot,
    DocumentStore,
    Increment,
    WriteOp,
    apply_field_transforms,
    merge_documents,
)
from .sql_store import SqlDocumentStore

__all__ = [
    "ArrayUnion",
    "DocumentSnapshot",
    "DocumentStore",
    "Increment",
    "SqlDocumentStore",
    "WriteOp",
    "apply_field_transforms",
    "merge_documents",
]
