"""Operational scripts for the community ledger."""
