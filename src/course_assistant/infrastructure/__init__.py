"""Adapters for the upstream model API and SQLite storage."""
