# app/infra/favicon_service.py
"""
Favicon lookup with provider fallback.

Tries a favicon-metadata provider first (small fixed icon size), then a
favicon-extraction provider. Bytes are served verbatim: no decode, no
resize. The content type is fixed per provider.
"""
from __future__ import annotations

from dataclasses import dataclass

from app.core.domain import ICON_CONTENT_TYPE, PNG_CONTENT_TYPE, EncodedPayload
from app.core.errors import BadRequestError, UpstreamUnavailableError
from app.infra.logging_config import get_logger
from app.infra.media_fetchers.base import FetchError, ImageFetcher
from app.infra.metrics import AppMetrics

logger = get_logger(__name__)


@dataclass(frozen=True)
class FaviconProvider:
    """URL template (``{domain}``/``{size}``) plus the content type it serves."""
    name: str
    url_template: str
    content_type: str

    def url_for(self, domain: str, size: int) -> str:
        return self.url_template.format(domain=domain, size=size)


def default_providers(s) -> tuple[FaviconProvider, FaviconProvider]:
    """Primary and secondary providers from settings."""
    return (
        FaviconProvider("gstatic", s.favicon_primary_url, ICON_CONTENT_TYPE),
        FaviconProvider("faviconextractor", s.favicon_secondary_url, PNG_CONTENT_TYPE),
    )


class FaviconResolver:
    def __init__(
        self,
        fetcher: ImageFetcher,
        primary: FaviconProvider,
        secondary: FaviconProvider,
        icon_size: int = 12,
        min_domain_length: int = 3,
    ):
        self._fetcher = fetcher
        self._primary = primary
        self._secondary = secondary
        self._icon_size = icon_size
        self._min_domain_length = min_domain_length

    def validate_domain(self, domain: str | None) -> str:
        """Raises BadRequestError for empty or too-short domains."""
        if not domain or len(domain) < self._min_domain_length:
            raise BadRequestError(f"Invalid domain: {domain!r}")
        return domain

    async def resolve(self, domain: str | None) -> EncodedPayload:
        """
        Fetch the favicon for ``domain``.

        Raises:
            BadRequestError: domain rejected before any network call
            UpstreamUnavailableError: both providers failed
        """
        domain = self.validate_domain(domain)

        try:
            result = await self._fetcher.fetch(
                self._primary.url_for(domain, self._icon_size),
                source=self._primary.name,
            )
            AppMetrics.favicon_request(self._primary.name)
            return EncodedPayload(data=result.data, content_type=self._primary.content_type)
        except FetchError as e:
            logger.warning(
                f"{self._primary.name} favicon for domain failed [{domain}] {e}",
                extra={"domain": domain},
            )

        try:
            result = await self._fetcher.fetch(
                self._secondary.url_for(domain, self._icon_size),
                source=self._secondary.name,
            )
        except FetchError as e:
            AppMetrics.favicon_request("none")
            logger.error(
                f"Favicon for domain failed [{domain}] {e}",
                extra={"domain": domain},
            )
            raise UpstreamUnavailableError(f"No favicon provider answered for {domain}") from e

        AppMetrics.favicon_request(self._secondary.name)
        return EncodedPayload(data=result.data, content_type=self._secondary.content_type)
