"""Exception types shared by the codec, the blocklist store and the collaborators."""
from __future__ import annotations


class DoHFilterError(Exception):
    """Base class for dohFilter failures."""


class MalformedMessage(DoHFilterError):
    """DNS message too short, truncated or using unsupported name encoding."""


class UpstreamUnavailable(DoHFilterError):
    """Blocklist source or upstream resolver unreachable or failing."""

    def __init__(self, message: str, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class StoreUnavailable(DoHFilterError):
    """Backing key-value store operation failed."""
