"""Denormalised user profile snapshots."""
from __future__ import annotations

from pydantic import Field

from .common import DocumentModel


class ProfileImage(DocumentModel):
    """Profile image reference with the crop offsets clients render with."""

    profile_image_url: str = Field("", alias="profileImageURL")
    image_offset_width: float = 0
    image_offset_height: float = 0


class UserSummary(DocumentModel):
    """Public profile snapshot copied onto communities and memberships.

    Snapshots are taken at write time and are not kept in sync with later
    profile edits.
    """

    id: str
    display_name: str = ""
    username: str = ""
    email: str = ""
    level: str = ""
    profile_image: ProfileImage = Field(default_factory=ProfileImage)
    is_founding_trainer: bool = False


class Participant(DocumentModel):
    """Someone who took part in a past group activity, as fed to backfill."""

    id: str
    username: str = ""
    profile_image: ProfileImage | None = None

    def to_summary(self, *, level: str) -> UserSummary:
        """Build the membership snapshot for this participant."""
        return UserSummary(
            id=self.id,
            display_name=self.username,
            username=self.username,
            email="",
            level=level,
            profile_image=self.profile_image or ProfileImage(),
        )
