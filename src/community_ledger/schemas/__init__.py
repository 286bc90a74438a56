# src/community_ledger/schemas/__init__.py
"""
Pydantic schemas for the records the ledger stores.

Records serialise to camelCase document bodies via ``to_document``.
"""

from .common import Cursor, DocumentModel
from .community import (
    COMMUNITIES_COLLECTION,
    JOINED_VIA_BACKFILL,
    JOINED_VIA_CREATOR,
    JOINED_VIA_MANUAL,
    MEMBERSHIPS_COLLECTION,
    Community,
    Membership,
    MembershipPage,
)
from .user import Participant, ProfileImage, UserSummary

__all__ = [
    "COMMUNITIES_COLLECTION", "MEMBERSHIPS_COLLECTION",
    "JOINED_VIA_BACKFILL", "JOINED_VIA_CREATOR", "JOINED_VIA_MANUAL",
    "Community", "Membership", "MembershipPage",
    "Cursor", "DocumentModel",
    "Participant", "ProfileImage", "UserSummary",
]
