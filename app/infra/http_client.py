# app/infra/http_client.py
"""
Outbound HTTP client configuration.

The fetcher session is built once from an explicit ``HttpClientConfig``
during application startup and owned by the app lifespan, which closes
it on shutdown. Nothing here creates sessions lazily.

Session profile
~~~~~~~~~~~~~~~
- **fetcher** – remote image downloads (total=20 s, redirects<=3,
  browser-like headers, gzip/deflate/brotli decoding)

Shutdown
~~~~~~~~
Call ``close_session()`` once during application shutdown.
"""
from __future__ import annotations

from dataclasses import dataclass

import aiohttp

from app.infra.logging_config import get_logger

logger = get_logger(__name__)

ACCEPT_IMAGES = "image/jpeg,image/png,image/webp,image/*,*/*;q=0.8"
ACCEPT_LANGUAGE = "en-US,en;q=0.9"
ACCEPT_ENCODING = "gzip, deflate, br"


@dataclass(frozen=True)
class HttpClientConfig:
    """Read-only settings shared by every outbound fetch."""
    timeout_seconds: float = 20.0
    max_redirects: int = 3
    pool_limit: int = 100
    referer: str = "https://www.google.com"
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/117.0"
    )

    @classmethod
    def from_settings(cls, s) -> "HttpClientConfig":
        return cls(
            timeout_seconds=s.fetch_timeout_seconds,
            max_redirects=s.fetch_max_redirects,
            pool_limit=s.fetch_pool_limit,
            referer=s.fetch_referer,
            user_agent=s.fetch_user_agent,
        )

    def headers(self) -> dict[str, str]:
        """Static header set resembling a desktop browser fetching an image."""
        return {
            "Referer": self.referer,
            "User-Agent": self.user_agent,
            "Accept": ACCEPT_IMAGES,
            "Accept-Language": ACCEPT_LANGUAGE,
            "Accept-Encoding": ACCEPT_ENCODING,
            "Connection": "keep-alive",
        }

    def client_timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.timeout_seconds)


def create_session(config: HttpClientConfig) -> aiohttp.ClientSession:
    """Build the shared fetcher session. Must be called inside a running loop."""
    session = aiohttp.ClientSession(
        timeout=config.client_timeout(),
        headers=config.headers(),
        auto_decompress=True,
        connector=aiohttp.TCPConnector(
            keepalive_timeout=30,
            limit=config.pool_limit,
            enable_cleanup_closed=True,
        ),
    )
    logger.debug(
        "HTTP session 'fetcher' created (limit=%d, timeout=%.1fs, redirects=%d)",
        config.pool_limit, config.timeout_seconds, config.max_redirects,
    )
    return session


async def close_session(session: aiohttp.ClientSession | None) -> None:
    """Gracefully close the fetcher session.  Call during app shutdown."""
    if session is not None and not session.closed:
        await session.close()
        logger.debug("HTTP session 'fetcher' closed")
