# app/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    port: int = 8080

    # Source fallbacks
    # Substituted when the caller's url is not an absolute http(s) URL (env IMAGE_FALLBACK_URL)
    image_fallback_url: str | None = None
    # Third-party image proxy used once when the primary fetch fails.
    # The original URL is appended as ?url=<percent-encoded>
    proxy_fallback_url: str = "https://expander.iavian.net/proxy"

    # Favicon providers ({domain} and {size} are substituted)
    favicon_primary_url: str = (
        "https://t0.gstatic.com/faviconV2?client=SOCIAL&type=FAVICON&size={size}"
        "&fallback_opts=TYPE,SIZE,URL&url=http://{domain}"
    )
    favicon_secondary_url: str = "https://www.faviconextractor.com/favicon/{domain}"
    favicon_icon_size: int = 12
    favicon_min_domain_length: int = 3

    # Outbound fetch
    fetch_timeout_seconds: float = 20.0
    fetch_max_redirects: int = 3
    fetch_pool_limit: int = 100
    fetch_referer: str = "https://www.google.com"
    fetch_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/117.0"
    )

    # Transcoding
    jpeg_quality: int = 80
    image_max_pixels: int = 50_000_000  # Decompression bomb guard (parse limit)

    # Response headers
    cache_control_success: str = "public, max-age=604800, immutable"
    cache_control_failure: str = "public, max-age=7200, must-revalidate"
    server_header: str = "iavian-img-1.1"

    # Monitoring
    enable_metrics: bool = True
    enable_request_logging: bool = True
    allowed_origins: list[str] = ["*"]

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []
        required_fields = [
            ("proxy_fallback_url", self.proxy_fallback_url),
            ("favicon_primary_url", self.favicon_primary_url),
            ("favicon_secondary_url", self.favicon_secondary_url),
        ]
        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    # --- Source fallbacks ---
    if not s.image_fallback_url:
        warnings.append(
            "image_fallback_url is not set (non-http(s) image urls will be rejected with 400)."
        )
    elif not s.image_fallback_url.startswith(("http://", "https://")):
        warnings.append("image_fallback_url is not an absolute http(s) URL.")

    if not s.proxy_fallback_url.startswith(("http://", "https://")):
        warnings.append("proxy_fallback_url is not an absolute http(s) URL (proxy retries will fail).")

    # --- Fetch limits ---
    if s.fetch_timeout_seconds > 60:
        warnings.append(
            f"fetch_timeout_seconds={s.fetch_timeout_seconds} is high (slow origins hold connections open)."
        )
    if s.fetch_max_redirects > 10:
        warnings.append(f"fetch_max_redirects={s.fetch_max_redirects} is unusually high.")

    # --- Transcoding ---
    if not 1 <= s.jpeg_quality <= 95:
        warnings.append(f"jpeg_quality={s.jpeg_quality} is outside the useful range 1..95.")

    # --- Exposure ---
    if s.is_production and s.allowed_origins == ["*"]:
        warnings.append("prod: allowed_origins=['*'] (CORS is wide open).")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")

settings = Settings()
validate_or_warn(settings)
