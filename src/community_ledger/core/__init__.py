"""Core configuration for the community ledger."""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
