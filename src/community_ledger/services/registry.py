"""Community registry: one community per creator."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from community_ledger.core.settings import Settings, settings as default_settings
from community_ledger.db.time import utcnow
from community_ledger.errors import DocumentNotFoundError, InvalidOperationError
from community_ledger.schemas.community import COMMUNITIES_COLLECTION, Community
from community_ledger.schemas.user import UserSummary
from community_ledger.storage.base import ArrayUnion, DocumentStore

__all__ = ["CommunityRegistry"]

logger = logging.getLogger(__name__)


def _new_community_id() -> str:
    return uuid.uuid4().hex


class CommunityRegistry:
    """Create and look up communities.

    The one-community-per-creator rule is enforced only by looking up the
    creator before creating; the store has no unique constraint on
    ``creatorId``, so two concurrent creations for one creator can both
    succeed.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = _new_community_id,
    ) -> None:
        self.store = store
        self.settings = settings or default_settings
        self._clock = clock
        self._id_factory = id_factory

    def create_community(
        self,
        creator_id: str,
        creator_summary: UserSummary,
        name: str,
        description: str,
        cover_image_url: str | None = None,
        initial_linked_activity_ids: Sequence[str] = (),
    ) -> Community:
        """Persist a new community and return it.

        The creator is counted in ``member_count`` from the start. Recording the
        creator's membership is a separate, non-transactional write the caller
        must issue (see ``MembershipLedger.seed_creator_membership``).
        """
        now = self._clock()
        community = Community(
            id=self._id_factory(),
            creator_id=creator_id,
            creator_summary=creator_summary,
            name=name,
            description=description,
            cover_image_url=cover_image_url,
            member_count=1,
            linked_activity_ids=list(dict.fromkeys(initial_linked_activity_ids)),
            created_at=now,
            updated_at=now,
        )
        self.store.set(COMMUNITIES_COLLECTION, community.id, community.to_document())
        logger.info("Created community %s for creator %s", community.id, creator_id)
        return community

    def get_community_by_id(self, community_id: str) -> Community | None:
        """Return the community, or ``None`` if it does not exist."""
        snapshot = self.store.get(COMMUNITIES_COLLECTION, community_id)
        if snapshot is None:
            return None
        return Community.from_document(snapshot.id, snapshot.data)

    def get_community_by_creator_id(self, creator_id: str) -> Community | None:
        """Return the creator's community, or ``None`` if they have none yet."""
        snapshots = self.store.query(COMMUNITIES_COLLECTION, {"creatorId": creator_id}, limit=1)
        if not snapshots:
            return None
        return Community.from_document(snapshots[0].id, snapshots[0].data)

    def update_community(self, community: Community) -> Community:
        """Replace the community's profile fields and bump ``updated_at``.

        ``member_count`` and ``linked_activity_ids`` are left alone: they are
        only changed through atomic increments and unions, and writing back a
        possibly stale copy would undo concurrent joins.
        """
        community.updated_at = self._clock()
        document = community.to_document()
        fields: dict[str, Any] = {
            key: document[key]
            for key in ("name", "description", "coverImageURL", "creatorSummary", "updatedAt")
        }
        self._update(community.id, fields)
        logger.info("Updated community %s", community.id)
        return community

    def link_activity(self, community_id: str, activity_id: str) -> None:
        """Add ``activity_id`` to the community's linked activities (set union)."""
        self._update(
            community_id,
            {
                "linkedActivityIds": ArrayUnion(activity_id),
                "updatedAt": self._clock().isoformat(),
            },
        )
        logger.info("Linked activity %s to community %s", activity_id, community_id)

    def get_or_create_community(
        self,
        creator: UserSummary,
        activity_id: str | None = None,
        *,
        seed_creator: Callable[[Community], Any] | None = None,
    ) -> Community:
        """Return the creator's community, creating one with defaults if needed.

        An existing community gets ``activity_id`` linked. A new one is seeded
        with it and ``seed_creator`` is called with the new community so the
        caller can record the creator's membership.
        """
        existing = self.get_community_by_creator_id(creator.id)
        if existing is not None:
            if activity_id:
                self.link_activity(existing.id, activity_id)
                if activity_id not in existing.linked_activity_ids:
                    existing.linked_activity_ids.append(activity_id)
            return existing

        community = self.create_community(
            creator.id,
            creator,
            self.settings.community_name_template.format(
                display_name=creator.display_name or creator.username,
            ),
            self.settings.community_default_description,
            initial_linked_activity_ids=[activity_id] if activity_id else [],
        )
        if seed_creator is not None:
            seed_creator(community)
        return community

    def _update(self, community_id: str, fields: dict[str, Any]) -> None:
        try:
            self.store.update(COMMUNITIES_COLLECTION, community_id, fields)
        except DocumentNotFoundError as exc:
            raise InvalidOperationError(f"Community {community_id} does not exist") from exc
