"""
Upstream Feed Source
===================

HTTP access to upstream feeds and media, on one shared aiohttp session.
"""

import asyncio
import ssl
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

import aiohttp
import certifi

from ..utils.logging import get_logger_for_component
from ..utils.exceptions import ErrorCode, TransientFetchError


class FeedSource(Protocol):
    """Anything that can produce the raw feed document of a source."""

    async def fetch(self, source_id: str) -> str:
        ...


class HttpClient:
    """Lazily created aiohttp session with keep-alive and certifi TLS.

    Every failure (connection error, timeout, non-200 status) surfaces as
    :class:`TransientFetchError` so retry policies see one exception type.
    """

    def __init__(self, user_agent: str = "FeedMirror/1.0", max_connections: int = 10):
        self.user_agent = user_agent
        self.max_connections = max_connections
        self.logger = get_logger_for_component("http_client")
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                ssl=self.ssl_context,
                limit=self.max_connections,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"User-Agent": self.user_agent},
            )
        return self._session

    @asynccontextmanager
    async def _get(self, url: str, timeout: float) -> AsyncIterator[aiohttp.ClientResponse]:
        session = self._get_session()
        try:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                if response.status != 200:
                    raise TransientFetchError(
                        f"HTTP {response.status} for {url}",
                        url=url,
                        status=response.status,
                        error_code=ErrorCode.FEED_BAD_STATUS,
                    )
                yield response
        except asyncio.TimeoutError as e:
            raise TransientFetchError(
                f"Request timeout after {timeout}s for {url}",
                url=url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise TransientFetchError(f"Request failed for {url}: {e}", url=url) from e

    async def get_text(self, url: str, timeout: float = 30) -> str:
        async with self._get(url, timeout) as response:
            return await response.text()

    async def get_bytes(self, url: str, timeout: float = 30) -> bytes:
        async with self._get(url, timeout) as response:
            return await response.read()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class HttpFeedSource:
    """Fetches a source's raw RSS document from a URL template."""

    def __init__(self, http_client: HttpClient, url_template: str, timeout: float = 30):
        self.http_client = http_client
        self.url_template = url_template
        self.timeout = timeout
        self.logger = get_logger_for_component("feed_source")

    def url_for(self, source_id: str) -> str:
        return self.url_template.format(source_id=source_id)

    async def fetch(self, source_id: str) -> str:
        url = self.url_for(source_id)
        self.logger.debug(f"Fetching feed: {url}", extra={"source_id": source_id})
        return await self.http_client.get_text(url, timeout=self.timeout)
