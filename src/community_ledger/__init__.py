"""Creator communities, their membership ledger and historical backfill."""

__version__ = "0.1.0"
