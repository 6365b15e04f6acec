"""Query routing: ingest, answer and health behaviors of the relay."""
from __future__ import annotations

from typing import Optional, Protocol

from dohFilter.blocklist.kv import KeyValueStore, MemoryKV, RedisKV
from dohFilter.blocklist.source import BlocklistSource
from dohFilter.blocklist.store import (
    Blocklist,
    HashedBlocklistStore,
    IngestReport,
    RebuiltSetBlocklist,
)
from dohFilter.config import Settings
from dohFilter.dns.wire import decode_query, encode_nxdomain
from dohFilter.errors import StoreUnavailable
from dohFilter.logging_config import get_logger
from dohFilter.upstream import DoHAnswer, UpstreamResolver

logger = get_logger("router")

HEALTH_MESSAGE = "dohFilter running!"


class TextSource(Protocol):
    async def fetch(self) -> str:
        ...


class Resolver(Protocol):
    async def forward(self, body: bytes) -> DoHAnswer:
        ...


class QueryRouter:
    """Orchestrates the codec, the blocklist and the upstream resolver.

    Holds no per-request state; one instance serves all concurrent requests.
    """

    def __init__(
        self,
        store: Blocklist,
        source: TextSource,
        resolver: Resolver,
        kv: Optional[KeyValueStore] = None,
    ) -> None:
        self.store = store
        self.source = source
        self.resolver = resolver
        self.kv = kv

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueryRouter":
        source = BlocklistSource(
            settings.blocklist.url,
            timeout_seconds=settings.blocklist.fetch_timeout_seconds,
        )
        resolver = UpstreamResolver(
            settings.upstream.url,
            timeout_seconds=settings.upstream.timeout_seconds,
        )

        kv: Optional[KeyValueStore] = None
        store: Blocklist
        if settings.blocklist.mode == "rebuilt":
            store = RebuiltSetBlocklist(source)
        else:
            if settings.store.backend == "memory":
                kv = MemoryKV()
            else:
                kv = RedisKV(settings.store.redis_url)
            store = HashedBlocklistStore(
                kv,
                ttl_seconds=settings.blocklist.ttl_seconds,
                key_prefix=settings.blocklist.key_prefix,
                write_concurrency=settings.blocklist.write_concurrency,
            )
        return cls(store, source, resolver, kv=kv)

    async def ingest(self) -> IngestReport:
        """Fetch the blocklist source and load it into the store.

        Source failures propagate as UpstreamUnavailable.
        """
        text = await self.source.fetch()
        return await self.store.ingest(text)

    async def answer(self, body: bytes) -> DoHAnswer:
        """Answer a wire-format query: NXDOMAIN if blocked, otherwise relay upstream.

        MalformedMessage is raised before the store or resolver is touched.
        A store failure is logged and the query is forwarded.
        """
        query = decode_query(body)
        domain = query.question_name

        try:
            blocked = await self.store.is_blocked(domain)
        except StoreUnavailable as exc:
            logger.warning(
                f"Blocklist lookup failed, forwarding query: {exc}",
                extra={"domain": domain, "outcome": "store_unavailable", "error_type": type(exc).__name__}
            )
            blocked = False

        logger.info(
            f"DNS query for {domain}, blocked? {blocked}",
            extra={
                "domain": domain,
                "transaction_id": query.transaction_id,
                "qtype": query.qtype,
                "blocked": blocked,
            }
        )

        if blocked:
            return DoHAnswer(body=encode_nxdomain(query.transaction_id))
        return await self.resolver.forward(body)

    def health(self) -> str:
        return HEALTH_MESSAGE

    async def close(self) -> None:
        """Release outbound sessions and the key-value client."""
        for resource in (self.source, self.resolver, self.kv):
            closer = getattr(resource, "close", None)
            if closer is not None:
                await closer()
