"""Blocklist ingestion, storage and membership checks."""
