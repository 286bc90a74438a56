# src/community_ledger/models/__init__.py
"""SQLAlchemy models for the community ledger."""

from .document import Document

__all__ = ["Document"]
