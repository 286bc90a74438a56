"""Error taxonomy shared by the storage layer and the ledger services.

Lookups that find nothing are not errors: they return ``None``. Everything
below is raised and propagated to the caller unchanged; nothing here is
retried automatically.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base exception for community ledger failures."""


class InvalidOperationError(LedgerError):
    """Raised when an operation is not valid for the current state.

    For example leaving a community without a membership record, or linking
    an activity to a community that does not exist.
    """


class CapacityExceededError(LedgerError):
    """Raised when a batched write carries more items than the store allows.

    Backfill chunks its writes before submitting them, so seeing this at
    runtime means the chunk size is misconfigured.
    """

    def __init__(self, requested: int, limit: int) -> None:
        super().__init__(f"Batch of {requested} writes exceeds the limit of {limit}")
        self.requested = requested
        self.limit = limit


class InfrastructureError(LedgerError):
    """Raised when the backing store is unreachable or fails a request."""


class DocumentNotFoundError(LedgerError):
    """Raised by a store ``update`` that targets a missing document."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document {collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


class DeadlineExceededError(LedgerError):
    """Raised when a caller-supplied deadline passes before work could start."""


class PartialBackfillFailure(LedgerError):
    """Raised when a backfill stops after committing only some of its chunks.

    Chunks before ``failed_chunk`` are committed and stay committed. The
    community's counters were not reconciled. Re-running the backfill with
    ``resume_from_chunk=failure.resume_from_chunk`` picks up where this run
    stopped; the underlying error is chained as ``__cause__``.
    """

    def __init__(
        self,
        *,
        community_id: str,
        failed_chunk: int,
        total_chunks: int,
        committed_chunks: int,
        committed_members: int,
    ) -> None:
        super().__init__(
            f"Backfill of community {community_id} failed at chunk "
            f"{failed_chunk}/{total_chunks} after committing {committed_chunks} "
            f"chunk(s) ({committed_members} member(s))"
        )
        self.community_id = community_id
        self.failed_chunk = failed_chunk
        self.total_chunks = total_chunks
        self.committed_chunks = committed_chunks
        self.committed_members = committed_members

    @property
    def resume_from_chunk(self) -> int:
        """Return the 1-based chunk number a retry should start from."""
        return self.failed_chunk
