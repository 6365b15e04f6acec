"""Remote blocklist source (newline-delimited domains over HTTP)."""
from __future__ import annotations

import asyncio
import time
from typing import Optional

import aiohttp

from dohFilter.errors import UpstreamUnavailable
from dohFilter.logging_config import get_logger

logger = get_logger("source")


class BlocklistSource:
    """Fetch the blocklist text from a fixed URL."""

    def __init__(self, url: str, timeout_seconds: float = 15.0) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def _client(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)
        return self.session

    async def fetch(self) -> str:
        client = await self._client()
        start_time = time.time()
        try:
            async with client.get(self.url) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise UpstreamUnavailable(
                        f"Blocklist source returned HTTP {resp.status}",
                        url=self.url,
                        status=resp.status,
                    )
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(
                f"Blocklist fetch failed: {exc}",
                extra={"url": self.url, "outcome": "error", "error_type": type(exc).__name__}
            )
            raise UpstreamUnavailable(f"Blocklist source unreachable: {exc}", url=self.url) from exc

        logger.info(
            "Blocklist fetched",
            extra={
                "url": self.url,
                "duration": round((time.time() - start_time) * 1000, 2),
                "outcome": "success",
            }
        )
        return text

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
