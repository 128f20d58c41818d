# app/infra/media_fetchers/base.py
"""
Image fetcher abstraction layer.

Defines the protocol and shared types for remote image fetchers.
A fetcher is responsible only for downloading raw bytes: it never
decodes, and it never retries. Fallback between providers is the
caller's job.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


class FetchError(Exception):
    """
    Base error for fetch failures.

    Attributes:
        url: The URL that was requested.
    """

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(message)


class FetchStatusError(FetchError):
    """Remote answered with a non-2xx status."""

    def __init__(self, url: str, status: int):
        self.status = status
        super().__init__(url, f"Remote returned status code {status}")


class FetchTimeoutError(FetchError):
    """Request did not complete within the configured timeout."""

    def __init__(self, url: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(url, f"Timed out after {timeout_seconds:.0f}s")


class FetchNetworkError(FetchError):
    """DNS, TLS, connection or body-read failure."""

    def __init__(self, url: str, cause: Exception):
        self.cause = cause
        super().__init__(url, f"{type(cause).__name__}: {cause}")


@dataclass
class FetchResult:
    """Result of a successful fetch."""

    data: bytes
    content_type: Optional[str] = None
    source: str = ""  # e.g. "origin", "proxy", "gstatic", "faviconextractor"


class ImageFetcher(Protocol):
    """Protocol for remote image fetchers."""

    async def fetch(self, url: str, source: str = "origin") -> FetchResult:
        """
        Download ``url`` and return raw bytes.

        Args:
            url: Absolute http(s) URL.
            source: Label recorded on the result (for logs and metrics).

        Returns:
            FetchResult with raw bytes and content type.

        Raises:
            FetchError: On any non-2xx status, timeout or transport error.
        """
        ...
