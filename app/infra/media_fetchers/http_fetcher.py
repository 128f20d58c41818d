# app/infra/media_fetchers/http_fetcher.py
"""
Generic HTTP image fetcher.

Single GET against an untrusted URL through the shared fetcher session.
Redirects are followed up to the configured limit; decompression is
handled by aiohttp. Every failure is classified into a ``FetchError``
subtype and never escapes as a raw aiohttp exception.
"""
from __future__ import annotations

import asyncio

import aiohttp

from app.infra.http_client import HttpClientConfig
from app.infra.logging_config import get_logger, shorten_url
from app.infra.media_fetchers.base import (
    FetchNetworkError,
    FetchResult,
    FetchStatusError,
    FetchTimeoutError,
)

logger = get_logger(__name__)


class HttpImageFetcher:
    """
    Fetches raw bytes over HTTP(S).

    The session and its config are created once at startup and passed in;
    the fetcher itself holds no per-request state.
    """

    def __init__(self, session: aiohttp.ClientSession, config: HttpClientConfig):
        self._session = session
        self._config = config

    async def fetch(self, url: str, source: str = "origin") -> FetchResult:
        short = shorten_url(url)

        try:
            async with self._session.get(
                url,
                allow_redirects=True,
                max_redirects=self._config.max_redirects,
            ) as response:
                if not 200 <= response.status < 300:
                    logger.warning(
                        f"Error fetching {short} from remote, status code: {response.status}"
                    )
                    raise FetchStatusError(url, response.status)

                data = await response.read()
                content_type = response.headers.get("Content-Type")

        except (asyncio.TimeoutError, TimeoutError) as e:
            logger.warning(f"Timeout fetching {short} after {self._config.timeout_seconds:.0f}s")
            raise FetchTimeoutError(url, self._config.timeout_seconds) from e
        except aiohttp.ClientError as e:
            logger.warning(f"Error fetching {short} from remote: {e}")
            raise FetchNetworkError(url, e) from e

        logger.debug(
            f"Fetched {short}: {len(data)} bytes, content_type={content_type}, source={source}"
        )
        return FetchResult(data=data, content_type=content_type, source=source)
