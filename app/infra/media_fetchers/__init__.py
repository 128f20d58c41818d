# app/infra/media_fetchers/__init__.py
"""
Remote image fetchers.

Strategy pattern: the pipeline talks to the ``ImageFetcher`` protocol,
so tests can inject fakes and the HTTP fetcher can be swapped without
touching orchestration code.
"""
from app.infra.media_fetchers.base import (
    FetchError,
    FetchNetworkError,
    FetchResult,
    FetchStatusError,
    FetchTimeoutError,
    ImageFetcher,
)
from app.infra.media_fetchers.http_fetcher import HttpImageFetcher

__all__ = [
    "FetchError",
    "FetchNetworkError",
    "FetchResult",
    "FetchStatusError",
    "FetchTimeoutError",
    "ImageFetcher",
    "HttpImageFetcher",
]
