"""DNS wire-format helpers."""
