"""Contract for the document store the ledger services write through."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

__all__ = [
    "ArrayUnion",
    "DocumentSnapshot",
    "DocumentStore",
    "Increment",
    "WriteOp",
    "apply_field_transforms",
    "merge_documents",
]


@dataclass(frozen=True)
class Increment:
    """Field transform adding ``delta`` to a numeric field atomically."""

    delta: int


@dataclass(frozen=True)
class ArrayUnion:
    """Field transform appending values missing from an array field."""

    values: tuple[Any, ...]

    def __init__(self, *values: Any) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document as read from the store."""

    id: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WriteOp:
    """One ``set`` inside a batched write."""

    collection: str
    doc_id: str
    data: Mapping[str, Any]
    merge: bool = False


class DocumentStore(Protocol):
    """Primitives required from the backing document store.

    ``update`` accepts :class:`Increment` and :class:`ArrayUnion` values and
    must apply them atomically with respect to concurrent updates of the same
    document. ``batched_write`` commits all of its writes or none of them and
    rejects batches larger than ``max_batch_size``.
    """

    max_batch_size: int

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None: ...

    def query(
        self,
        collection: str,
        filters: Mapping[str, Any],
        *,
        limit: int | None = None,
        start_after: str | None = None,
    ) -> list[DocumentSnapshot]: ...

    def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None: ...

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None: ...

    def batched_write(self, writes: Sequence[WriteOp]) -> None: ...


def apply_field_transforms(current: Mapping[str, Any], fields: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``current`` with ``fields`` applied, resolving transforms.

    Plain values overwrite; :class:`Increment` adds to the existing number
    (missing counts as zero); :class:`ArrayUnion` appends values not already
    present, keeping existing order.
    """
    merged = dict(current)
    for key, value in fields.items():
        if isinstance(value, Increment):
            merged[key] = (merged.get(key) or 0) + value.delta
        elif isinstance(value, ArrayUnion):
            existing = list(merged.get(key) or [])
            for item in value.values:
                if item not in existing:
                    existing.append(item)
            merged[key] = existing
        else:
            merged[key] = value
    return merged


def merge_documents(current: Mapping[str, Any], incoming: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``current`` overlaid with ``incoming``, merging nested maps key by key.

    Lists and scalars in ``incoming`` replace the existing value outright.
    """
    merged = dict(current)
    for key, value in incoming.items():
        existing = merged.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            merged[key] = merge_documents(existing, value)
        else:
            merged[key] = value
    return merged
