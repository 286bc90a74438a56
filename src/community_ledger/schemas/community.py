"""Community and membership records."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from .common import Cursor, DocumentModel
from .user import UserSummary

COMMUNITIES_COLLECTION = "communities"
MEMBERSHIPS_COLLECTION = "communityMembers"

# Provenance tags for Membership.joined_via; any other value is an
# originating activity id.
JOINED_VIA_MANUAL = "manual"
JOINED_VIA_BACKFILL = "backfill"
JOINED_VIA_CREATOR = "creator"


class Community(DocumentModel):
    """A creator-owned community.

    ``member_count`` is a cached counter maintained by paired writes and may
    drift from the number of active memberships; ``linked_activity_ids`` only
    ever grows.
    """

    id: str
    creator_id: str
    creator_summary: UserSummary
    name: str
    description: str = ""
    cover_image_url: str | None = Field(None, alias="coverImageURL")
    member_count: int = 0
    linked_activity_ids: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class Membership(DocumentModel):
    """One user's membership in one community.

    Leaving flips ``is_active`` instead of deleting, so rejoining reuses the
    same record.
    """

    id: str
    community_id: str
    user_id: str
    user_summary: UserSummary
    joined_via: str
    joined_at: datetime
    is_active: bool = True


class MembershipPage(BaseModel):
    """A page of active members and the cursor for the next page, if any."""

    members: list[Membership]
    next_cursor: Cursor | None = None
