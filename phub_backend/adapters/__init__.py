"""Adapters for external systems (database)."""
