"""Membership ledger: joins, leaves and the cached member counter."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from datetime import datetime

from community_ledger.db.time import utcnow
from community_ledger.errors import DocumentNotFoundError, InvalidOperationError
from community_ledger.schemas.common import Cursor
from community_ledger.schemas.community import (
    COMMUNITIES_COLLECTION,
    JOINED_VIA_CREATOR,
    MEMBERSHIPS_COLLECTION,
    Community,
    Membership,
    MembershipPage,
)
from community_ledger.schemas.user import UserSummary
from community_ledger.services.registry import CommunityRegistry
from community_ledger.storage.base import DocumentStore, Increment

__all__ = ["MembershipLedger", "compute_membership_id"]

logger = logging.getLogger(__name__)


def compute_membership_id(community_id: str, user_id: str) -> str:
    """Return the deterministic membership id for a ``(community, user)`` pair.

    The community id is length-prefixed before hashing so that no two distinct
    pairs share an input string (``("a_b", "c")`` vs ``("a", "b_c")``).
    """
    key = f"{len(community_id)}:{community_id}{user_id}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class MembershipLedger:
    """Record who belongs to which community.

    Every state change is a membership write followed by a separate counter
    update on the community. The read-then-write in :meth:`join` is not
    atomic: two concurrent first joins for the same user both create the
    (same) record and both increment ``member_count``.
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: CommunityRegistry,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.registry = registry
        self._clock = clock

    def get_membership(self, community_id: str, user_id: str) -> Membership | None:
        """Return the membership record whether active or not."""
        snapshot = self.store.get(MEMBERSHIPS_COLLECTION, compute_membership_id(community_id, user_id))
        if snapshot is None:
            return None
        return Membership.from_document(snapshot.id, snapshot.data)

    def join(
        self,
        community_id: str,
        user_id: str,
        user_summary: UserSummary,
        joined_via: str,
    ) -> Membership:
        """Add ``user_id`` to the community.

        Three outcomes: a new record is created and the counter incremented;
        an inactive record is reactivated without touching the counter or
        ``joined_at``; an active record is returned unchanged.
        """
        existing = self.get_membership(community_id, user_id)

        if existing is None:
            membership = Membership(
                id=compute_membership_id(community_id, user_id),
                community_id=community_id,
                user_id=user_id,
                user_summary=user_summary,
                joined_via=joined_via,
                joined_at=self._clock(),
                is_active=True,
            )
            self.store.set(MEMBERSHIPS_COLLECTION, membership.id, membership.to_document())
            self._adjust_member_count(community_id, 1)
            logger.info("Added member %s to community %s", user_id, community_id)
            return membership

        if not existing.is_active:
            # Reactivation leaves member_count as is.
            existing.is_active = True
            existing.joined_via = joined_via
            existing.user_summary = user_summary
            self.store.update(
                MEMBERSHIPS_COLLECTION,
                existing.id,
                {
                    "isActive": True,
                    "joinedVia": joined_via,
                    "userSummary": user_summary.to_embedded(),
                },
            )
            logger.info("Reactivated member %s in community %s", user_id, community_id)
            return existing

        logger.debug("User %s is already a member of community %s", user_id, community_id)
        return existing

    def leave(self, community_id: str, user_id: str) -> None:
        """Deactivate the membership and decrement the counter.

        The decrement happens whatever the record's prior state, so leaving
        twice decrements twice.

        Raises:
            InvalidOperationError: If the user has no membership record.
        """
        membership_id = compute_membership_id(community_id, user_id)
        try:
            self.store.update(MEMBERSHIPS_COLLECTION, membership_id, {"isActive": False})
        except DocumentNotFoundError as exc:
            raise InvalidOperationError(
                f"User {user_id} is not a member of community {community_id}"
            ) from exc
        self._adjust_member_count(community_id, -1)
        logger.info("User %s left community %s", user_id, community_id)

    def is_member(self, community_id: str, user_id: str) -> bool:
        """Return True iff an active membership record exists."""
        membership = self.get_membership(community_id, user_id)
        return membership is not None and membership.is_active

    def list_active_members(self, community_id: str) -> list[Membership]:
        """Return every active membership of the community."""
        snapshots = self.store.query(
            MEMBERSHIPS_COLLECTION,
            {"communityId": community_id, "isActive": True},
        )
        return [Membership.from_document(s.id, s.data) for s in snapshots]

    def list_active_members_page(
        self,
        community_id: str,
        *,
        limit: int = 500,
        cursor: Cursor | None = None,
    ) -> MembershipPage:
        """Return one page of active members, ordered by membership id."""
        if limit <= 0:
            raise InvalidOperationError("limit must be positive")
        snapshots = self.store.query(
            MEMBERSHIPS_COLLECTION,
            {"communityId": community_id, "isActive": True},
            limit=limit,
            start_after=cursor.after if cursor else None,
        )
        members = [Membership.from_document(s.id, s.data) for s in snapshots]
        next_cursor = Cursor(after=members[-1].id) if len(members) == limit else None
        return MembershipPage(members=members, next_cursor=next_cursor)

    def list_communities_for_user(self, user_id: str) -> list[Community]:
        """Return the communities ``user_id`` is an active member of.

        Memberships whose community no longer exists are skipped.
        """
        snapshots = self.store.query(
            MEMBERSHIPS_COLLECTION,
            {"userId": user_id, "isActive": True},
        )
        communities: list[Community] = []
        for snapshot in snapshots:
            community = self.registry.get_community_by_id(snapshot.data["communityId"])
            if community is not None:
                communities.append(community)
        return communities

    def seed_creator_membership(self, community: Community) -> Membership:
        """Record the creator's own membership of a freshly created community.

        ``create_community`` already counts the creator, so unlike :meth:`join`
        this never touches ``member_count``. An existing record is returned
        as is.
        """
        existing = self.get_membership(community.id, community.creator_id)
        if existing is not None:
            return existing
        membership = Membership(
            id=compute_membership_id(community.id, community.creator_id),
            community_id=community.id,
            user_id=community.creator_id,
            user_summary=community.creator_summary,
            joined_via=JOINED_VIA_CREATOR,
            joined_at=community.created_at,
            is_active=True,
        )
        self.store.set(MEMBERSHIPS_COLLECTION, membership.id, membership.to_document())
        logger.info("Recorded creator %s as member of community %s", community.creator_id, community.id)
        return membership

    def count_active_members(self, community_id: str) -> int:
        """Return the number of active memberships, derived from the records."""
        return len(self.list_active_members(community_id))

    def recount_member_count(self, community_id: str) -> int:
        """Overwrite the cached ``member_count`` with the derived count.

        This is an explicit repair for counter drift; nothing calls it
        implicitly. Joins racing with the recount can still skew the result.
        """
        count = self.count_active_members(community_id)
        try:
            self.store.update(
                COMMUNITIES_COLLECTION,
                community_id,
                {"memberCount": count, "updatedAt": self._clock().isoformat()},
            )
        except DocumentNotFoundError as exc:
            raise InvalidOperationError(f"Community {community_id} does not exist") from exc
        logger.info("Recounted community %s: %d active member(s)", community_id, count)
        return count

    def _adjust_member_count(self, community_id: str, delta: int) -> None:
        try:
            self.store.update(COMMUNITIES_COLLECTION, community_id, {"memberCount": Increment(delta)})
        except DocumentNotFoundError as exc:
            raise InvalidOperationError(f"Community {community_id} does not exist") from exc
