# app/infra/image_service.py
"""
Image transform pipeline.

Responsibilities:
- Normalize and validate the source URL (with operator fallback image)
- Fetch the source bytes, retrying once through a third-party image proxy
- Resolve the output size against the image's natural size
- Decode / resample / encode via the shared transcoder

Each stage runs once with at most one fallback; there is no retry loop.
Failures surface as ``PipelineError`` subtypes for the HTTP layer.
"""
from __future__ import annotations

import asyncio
from urllib.parse import quote_plus, urlparse

from app.core.domain import BoundingBox, EncodedPayload, SourceRequest, TargetDimensions
from app.core.errors import (
    BadRequestError,
    ImageDecodeError,
    InvalidSizeError,
    TranscodeError,
    UnprocessableImageError,
    UpstreamUnavailableError,
)
from app.core.sizing import resolve_target_size, validate_box
from app.infra.image_processor import ImageTranscoder
from app.infra.logging_config import get_logger, shorten_url
from app.infra.media_fetchers.base import FetchError, FetchResult, ImageFetcher
from app.infra.metrics import AppMetrics

logger = get_logger(__name__)


def is_absolute_http_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        # e.g. unbalanced IPv6 bracket: "http://[::1/x.png"
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def build_proxy_url(proxy_base_url: str, url: str) -> str:
    """``{proxy}?url={form-encoded url}``; appends with ``&`` if the base has a query."""
    separator = "&" if "?" in proxy_base_url else "?"
    return f"{proxy_base_url}{separator}url={quote_plus(url)}"


class ImageTransformService:
    """
    Orchestrates fetch -> size resolution -> transcode for ``/img``.

    All collaborators are injected so tests can substitute fakes; the
    instance itself is read-only after construction and shared by all
    concurrent requests.
    """

    def __init__(
        self,
        fetcher: ImageFetcher,
        transcoder: ImageTranscoder,
        proxy_fallback_url: str,
        image_fallback_url: str | None = None,
    ):
        self._fetcher = fetcher
        self._transcoder = transcoder
        self._proxy_fallback_url = proxy_fallback_url
        self._image_fallback_url = image_fallback_url

    # ------------------------------------------------------------------
    # Stage 1: source URL
    # ------------------------------------------------------------------

    def resolve_source_url(self, request: SourceRequest) -> str:
        """
        Normalized absolute URL to fetch.

        Raises:
            BadRequestError: url is not http(s) and no fallback image is configured
        """
        url = request.normalized_url()
        if is_absolute_http_url(url):
            return url

        if self._image_fallback_url:
            logger.info(f"Non-http url [{shorten_url(url)}], serving configured fallback image")
            return self._image_fallback_url

        logger.error(f"Resizing for [{shorten_url(url)}] failed: not an absolute http(s) url")
        raise BadRequestError(f"Unsupported url: {shorten_url(url, 60)}")

    # ------------------------------------------------------------------
    # Stage 2: fetch with proxy fallback
    # ------------------------------------------------------------------

    async def fetch_with_fallback(self, url: str) -> FetchResult:
        """
        Fetch ``url``; on any failure try the image proxy exactly once.

        Raises:
            UpstreamUnavailableError: both attempts failed
        """
        try:
            return await self._fetcher.fetch(url, source="origin")
        except FetchError as primary_error:
            proxy_url = build_proxy_url(self._proxy_fallback_url, url)
            logger.warning(
                f"Primary fetch failed for [{shorten_url(url)}] ({primary_error}), trying proxy"
            )

        logger.info(f"Fetching from proxy {shorten_url(proxy_url)}")
        try:
            result = await self._fetcher.fetch(proxy_url, source="proxy")
        except FetchError as proxy_error:
            AppMetrics.fetch_fallback("failed")
            logger.error(
                f"Fetching from proxy failed for [{shorten_url(url)}] ({proxy_error})"
            )
            raise UpstreamUnavailableError(f"Source unavailable: {proxy_error}") from proxy_error

        AppMetrics.fetch_fallback("recovered")
        return result

    # ------------------------------------------------------------------
    # Stages 3-4: size, then decode, resample, encode (CPU-bound)
    # ------------------------------------------------------------------

    def _transcode(self, data: bytes, box: BoundingBox) -> EncodedPayload:
        # Size is settled before any pixel work; only the header is read for it
        validate_box(box)
        natural = self._transcoder.read_dimensions(data)
        target = resolve_target_size(natural.width, natural.height, box)
        decoded = self._transcoder.decode(data)
        return self._transcoder.render(decoded, target)

    async def transform(self, request: SourceRequest) -> EncodedPayload:
        """
        Run the whole pipeline for one request.

        Raises:
            BadRequestError: bad url or invalid bounding box
            UpstreamUnavailableError: origin and proxy both failed
            UnprocessableImageError: bytes not decodable, or no encoder succeeded
        """
        url = self.resolve_source_url(request)
        logger.debug(f"Resizing for url [{shorten_url(url)}] box={request.box}")

        fetched = await self.fetch_with_fallback(url)

        loop = asyncio.get_running_loop()
        try:
            payload = await loop.run_in_executor(None, self._transcode, fetched.data, request.box)
        except InvalidSizeError as e:
            logger.warning(f"Resizing for [{shorten_url(url)}] rejected: {e}")
            raise BadRequestError(str(e)) from e
        except TranscodeError as e:
            logger.warning(
                f"Resizing for [{shorten_url(url)}] failed ({type(e).__name__}): {e}"
            )
            raise UnprocessableImageError(str(e)) from e

        logger.debug(
            f"Resized [{shorten_url(url)}] via {fetched.source}: "
            f"{payload.content_type}, {payload.size_bytes} bytes"
        )
        return payload

    async def probe(self, request: SourceRequest) -> TargetDimensions:
        """
        Natural size of the source image (stages 1-3 only, no re-encode).

        Raises:
            BadRequestError, UpstreamUnavailableError, UnprocessableImageError
        """
        url = self.resolve_source_url(request)
        fetched = await self.fetch_with_fallback(url)

        try:
            return self._transcoder.read_dimensions(fetched.data)
        except ImageDecodeError as e:
            logger.warning(f"Reading dimensions for [{shorten_url(url)}] failed: {e}")
            raise UnprocessableImageError(str(e)) from e
