# src/community_ledger/services/__init__.py
"""Business logic services for the community ledger."""

from .backfill import BackfillEngine
from .membership import MembershipLedger, compute_membership_id
from .registry import CommunityRegistry

__all__ = [
    "BackfillEngine",
    "CommunityRegistry",
    "MembershipLedger",
    "compute_membership_id",
]
