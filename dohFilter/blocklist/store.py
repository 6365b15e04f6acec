"""Blocklist membership service.

Two interchangeable variants answer the same ``ingest`` / ``is_blocked``
contract:

- ``HashedBlocklistStore`` persists one presence marker per domain in a
  key-value store. Keys are SHA-256 digests so their size is constant no
  matter how long the domain is (backing stores cap keys, e.g. at 512 bytes).
  The keyspace cannot be enumerated back into domains; only membership
  checks are supported.
- ``RebuiltSetBlocklist`` keeps nothing durable and rebuilds an exact-match
  set from the remote source on every lookup.
"""
from __future__ import annotations

import asyncio
import hashlib
import time
from typing import List, Protocol, Set

from pydantic import BaseModel

from dohFilter.blocklist.kv import KeyValueStore
from dohFilter.blocklist.source import BlocklistSource
from dohFilter.errors import StoreUnavailable
from dohFilter.logging_config import get_logger

logger = get_logger("store")

PRESENCE_MARKER = "1"
MAX_KEY_BYTES = 512


class IngestReport(BaseModel):
    total: int
    stored: int
    failed: int = 0

    @property
    def complete(self) -> bool:
        return self.failed == 0 and self.stored == self.total


class Blocklist(Protocol):
    async def ingest(self, source_text: str) -> IngestReport:
        ...

    async def is_blocked(self, domain: str) -> bool:
        ...


def normalize_domain(domain: str) -> str:
    """Trim, lowercase and drop one trailing root dot."""
    name = domain.strip().lower()
    if name.endswith("."):
        name = name[:-1]
    return name


def parse_blocklist(source_text: str) -> List[str]:
    """Return the distinct normalized domains of a newline-delimited list.

    Blank lines and ``#`` comment lines are skipped; order of first
    appearance is kept.
    """
    seen: Set[str] = set()
    domains: List[str] = []
    for line in source_text.splitlines():
        if line.strip().startswith("#"):
            continue
        domain = normalize_domain(line)
        if domain and domain not in seen:
            seen.add(domain)
            domains.append(domain)
    return domains


def hash_key(domain: str) -> str:
    """Deterministic SHA-256 hex digest of the normalized domain."""
    return hashlib.sha256(normalize_domain(domain).encode("utf-8")).hexdigest()


class HashedBlocklistStore:
    """Blocklist persisted as digest-keyed markers with a retention TTL."""

    def __init__(
        self,
        kv: KeyValueStore,
        ttl_seconds: int = 86400,
        key_prefix: str = "blocklist:",
        write_concurrency: int = 100,
    ) -> None:
        if len(key_prefix.encode("utf-8")) + 64 > MAX_KEY_BYTES:
            raise ValueError(f"key prefix too long for {MAX_KEY_BYTES}-byte keys: {key_prefix!r}")
        self.kv = kv
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.write_concurrency = write_concurrency

    def key_for(self, domain: str) -> str:
        return f"{self.key_prefix}{hash_key(domain)}"

    async def ingest(self, source_text: str) -> IngestReport:
        """Write one marker per distinct domain and wait for every write.

        Writes run concurrently with no ordering between them. Failed writes
        are counted in the report rather than raised so a partial ingest is
        visible to the caller.
        """
        domains = parse_blocklist(source_text)
        start_time = time.time()
        sem = asyncio.Semaphore(self.write_concurrency)

        async def _put_one(domain: str) -> None:
            async with sem:
                await self.kv.put(self.key_for(domain), PRESENCE_MARKER, self.ttl_seconds)

        results = await asyncio.gather(*(_put_one(d) for d in domains), return_exceptions=True)

        failed = 0
        for domain, item in zip(domains, results):
            if isinstance(item, BaseException):
                failed += 1
                logger.warning(
                    f"Blocklist write failed: {item}",
                    extra={"domain": domain, "outcome": "error", "error_type": type(item).__name__}
                )

        report = IngestReport(total=len(domains), stored=len(domains) - failed, failed=failed)
        logger.info(
            "Blocklist ingest completed",
            extra={
                "total": report.total,
                "stored": report.stored,
                "failed": report.failed,
                "duration": round((time.time() - start_time) * 1000, 2),
                "outcome": "success" if report.complete else "partial",
            }
        )
        return report

    async def is_blocked(self, domain: str) -> bool:
        """Raises StoreUnavailable when the backing store cannot be read."""
        if not normalize_domain(domain):
            return False
        try:
            marker = await self.kv.get(self.key_for(domain))
        except StoreUnavailable:
            raise
        except Exception as exc:
            raise StoreUnavailable(f"Blocklist lookup failed: {exc}") from exc
        return marker is not None


class RebuiltSetBlocklist:
    """Exact-match domain set rebuilt from the remote source on each lookup."""

    def __init__(self, source: BlocklistSource) -> None:
        self.source = source
        self._domains: Set[str] = set()

    async def ingest(self, source_text: str) -> IngestReport:
        domains = parse_blocklist(source_text)
        self._domains = set(domains)
        logger.info(
            "Blocklist set rebuilt",
            extra={"total": len(domains), "stored": len(domains), "mode": "rebuilt", "outcome": "success"}
        )
        return IngestReport(total=len(domains), stored=len(domains))

    async def is_blocked(self, domain: str) -> bool:
        name = normalize_domain(domain)
        if not name:
            return False
        await self.ingest(await self.source.fetch())
        return name in self._domains

    @property
    def domains(self) -> Set[str]:
        return set(self._domains)
