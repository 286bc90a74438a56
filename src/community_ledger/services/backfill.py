"""Backfill reconciliation: bulk membership import from past activities."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from datetime import datetime
from typing import TypeVar

from community_ledger.core.settings import Settings, settings as default_settings
from community_ledger.db.time import utcnow
from community_ledger.errors import (
    CapacityExceededError,
    DeadlineExceededError,
    DocumentNotFoundError,
    InvalidOperationError,
    LedgerError,
    PartialBackfillFailure,
)
from community_ledger.schemas.community import (
    COMMUNITIES_COLLECTION,
    JOINED_VIA_BACKFILL,
    MEMBERSHIPS_COLLECTION,
    Membership,
)
from community_ledger.schemas.user import Participant
from community_ledger.services.membership import compute_membership_id
from community_ledger.storage.base import ArrayUnion, DocumentStore, Increment, WriteOp

__all__ = ["BackfillEngine", "chunked", "dedupe_participants"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


def dedupe_participants(participants: Iterable[Participant], creator_id: str) -> list[Participant]:
    """Drop the creator and repeated ids, keeping the first occurrence in order."""
    unique: dict[str, Participant] = {}
    for participant in participants:
        if participant.id == creator_id or participant.id in unique:
            continue
        unique[participant.id] = participant
    return list(unique.values())


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of ``items`` holding at most ``size`` elements."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BackfillEngine:
    """Write historical participants into a community's membership.

    Memberships are upserted chunk by chunk, each chunk one atomic batched
    write with merge semantics, so a chunk can be replayed safely. There is
    no atomicity across chunks: a failure leaves earlier chunks committed and
    skips counter reconciliation. The final counter increment is not
    idempotent; running the same backfill twice counts everyone twice.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        settings: Settings | None = None,
        chunk_size: int | None = None,
        clock: Callable[[], datetime] = utcnow,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.settings = settings or default_settings
        self.chunk_size = chunk_size if chunk_size is not None else self.settings.backfill_chunk_size
        self._clock = clock
        self._timer = timer
        if self.chunk_size <= 0:
            raise ValueError("backfill chunk size must be positive")
        if self.chunk_size > store.max_batch_size:
            raise CapacityExceededError(self.chunk_size, store.max_batch_size)

    def backfill_members(
        self,
        community_id: str,
        creator_id: str,
        activity_ids: Sequence[str],
        participants: Iterable[Participant],
        *,
        resume_from_chunk: int = 1,
        deadline: float | None = None,
    ) -> int:
        """Upsert memberships for ``participants`` and reconcile the community.

        Args:
            community_id: Community receiving the members.
            creator_id: The community's creator; never added by backfill.
            activity_ids: Activities the participants came from; unioned into
                the community's linked activities after all chunks commit.
            participants: Historical participants, possibly with repeats.
            resume_from_chunk: 1-based chunk to start from. Earlier chunks are
                assumed committed by an interrupted run and are not rewritten,
                but still count towards the counter increment since that run
                never reconciled.
            deadline: Value of the engine timer (``time.monotonic`` by default)
                after which no further chunk is started.

        Returns:
            The number of members added to ``member_count``.

        Raises:
            PartialBackfillFailure: If a chunk fails or the deadline passes;
                the cause is chained.
            InvalidOperationError: If the community does not exist when
                reconciling.
        """
        unique = dedupe_participants(participants, creator_id)
        if not unique:
            logger.debug("No participants to backfill for community %s", community_id)
            return 0

        chunks = list(chunked(unique, self.chunk_size))
        total_chunks = len(chunks)
        if not 1 <= resume_from_chunk <= total_chunks:
            raise InvalidOperationError(
                f"resume_from_chunk must be between 1 and {total_chunks}, got {resume_from_chunk}"
            )

        logger.info(
            "Starting backfill for community %s: %d unique participant(s) in %d chunk(s)",
            community_id,
            len(unique),
            total_chunks,
        )

        level = self.settings.default_participant_level
        committed_members = sum(len(chunk) for chunk in chunks[: resume_from_chunk - 1])
        for number, chunk in enumerate(chunks, start=1):
            if number < resume_from_chunk:
                continue
            try:
                if deadline is not None and self._timer() >= deadline:
                    raise DeadlineExceededError(f"Deadline passed before chunk {number}")
                writes = [self._membership_write(community_id, p, level) for p in chunk]
                self.store.batched_write(writes)
            except CapacityExceededError:
                # Chunking bug, not a transient failure.
                raise
            except LedgerError as exc:
                logger.error(
                    "Backfill of community %s failed at chunk %d/%d with %d member(s) committed: %s",
                    community_id,
                    number,
                    total_chunks,
                    committed_members,
                    exc,
                )
                raise PartialBackfillFailure(
                    community_id=community_id,
                    failed_chunk=number,
                    total_chunks=total_chunks,
                    committed_chunks=number - 1,
                    committed_members=committed_members,
                ) from exc
            committed_members += len(chunk)
            logger.info("Committed backfill chunk %d/%d for community %s", number, total_chunks, community_id)

        added = len(unique)
        try:
            self.store.update(
                COMMUNITIES_COLLECTION,
                community_id,
                {
                    "memberCount": Increment(added),
                    "linkedActivityIds": ArrayUnion(*activity_ids),
                    "updatedAt": self._clock().isoformat(),
                },
            )
        except DocumentNotFoundError as exc:
            logger.warning("Backfill of community %s committed but counters were not reconciled", community_id)
            raise InvalidOperationError(f"Community {community_id} does not exist") from exc
        except LedgerError:
            logger.warning("Backfill of community %s committed but counters were not reconciled", community_id)
            raise

        logger.info("Backfill complete: added %d member(s) to community %s", added, community_id)
        return added

    def _membership_write(self, community_id: str, participant: Participant, level: str) -> WriteOp:
        membership = Membership(
            id=compute_membership_id(community_id, participant.id),
            community_id=community_id,
            user_id=participant.id,
            user_summary=participant.to_summary(level=level),
            joined_via=JOINED_VIA_BACKFILL,
            joined_at=self._clock(),
            is_active=True,
        )
        return WriteOp(MEMBERSHIPS_COLLECTION, membership.id, membership.to_document(), merge=True)
