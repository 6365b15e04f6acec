"""Upstream DoH resolver client."""
from __future__ import annotations

import asyncio
import time
from typing import Optional

import aiohttp
from pydantic import BaseModel

from dohFilter.dns.wire import DNS_MESSAGE_CONTENT_TYPE
from dohFilter.errors import UpstreamUnavailable
from dohFilter.logging_config import get_logger

logger = get_logger("upstream")


class DoHAnswer(BaseModel):
    """Transport-neutral answer to a DNS query."""
    status: int = 200
    body: bytes
    content_type: str = DNS_MESSAGE_CONTENT_TYPE


class UpstreamResolver:
    """Forward wire-format queries to a DoH resolver with POST."""

    def __init__(self, url: str, timeout_seconds: float = 5.0) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def _client(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)
        return self.session

    async def forward(self, body: bytes) -> DoHAnswer:
        """POST ``body`` unchanged and return the resolver's answer verbatim.

        Raises:
            UpstreamUnavailable: connection failure, timeout or a 5xx status.
        """
        client = await self._client()
        start_time = time.time()
        try:
            async with client.post(
                self.url,
                data=body,
                allow_redirects=False,
                headers={"content-type": DNS_MESSAGE_CONTENT_TYPE, "accept": DNS_MESSAGE_CONTENT_TYPE},
            ) as resp:
                payload = await resp.read()
                status = resp.status
                content_type = resp.headers.get("content-type", DNS_MESSAGE_CONTENT_TYPE)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(
                f"Upstream resolver unreachable: {exc}",
                extra={"url": self.url, "outcome": "error", "error_type": type(exc).__name__}
            )
            raise UpstreamUnavailable(f"Upstream resolver unreachable: {exc}", url=self.url) from exc

        duration_ms = round((time.time() - start_time) * 1000, 2)
        if status >= 500:
            logger.error(
                f"Upstream resolver returned HTTP {status}",
                extra={"url": self.url, "status_code": status, "duration": duration_ms, "outcome": "error"}
            )
            raise UpstreamUnavailable(f"Upstream resolver returned HTTP {status}", url=self.url, status=status)

        logger.debug(
            "Query forwarded upstream",
            extra={"url": self.url, "status_code": status, "duration": duration_ms, "outcome": "success"}
        )
        return DoHAnswer(status=status, body=payload, content_type=content_type)

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
