# app/transport/http_app.py
"""
HTTP surface of the image proxy.

Public endpoints:
1. /img      - fetch, resize and re-encode a remote image
2. /favicon  - favicon bytes for a domain, verbatim
3. /dim      - natural dimensions of a remote image
4. /, /health, /metrics - liveness and operational data

Route handlers only translate query parameters into pipeline calls and
pipeline errors into status codes; all behavior lives in app.infra.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from app.config import settings
from app.core.domain import EncodedPayload
from app.core.errors import PipelineError, UpstreamUnavailableError
from app.infra.favicon_service import FaviconResolver, default_providers
from app.infra.http_client import HttpClientConfig, close_session, create_session
from app.infra.image_processor import ImageTranscoder, get_image_config
from app.infra.image_service import ImageTransformService
from app.infra.logging_config import setup_logging, get_logger
from app.infra.media_fetchers import HttpImageFetcher
from app.infra.metrics import AppMetrics, get_metrics_collector
from app.transport.middleware import (
    ErrorHandlingMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    ResponseHeadersMiddleware,
)
from app.transport.schemas import DimensionQuery, DimensionsOut, FaviconQuery, ImageQuery

# Initialize logging first
setup_logging(
    level=settings.log_level,
    use_json=settings.is_production
)

logger = get_logger(__name__)

# Failures on these paths get the short, self-healing cache header
IMAGE_PATHS = ("/img", "/dim")


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_image_service(request: Request) -> ImageTransformService:
    """Get image pipeline from app state"""
    return request.app.state.image_service


def get_favicon_resolver(request: Request) -> FaviconResolver:
    """Get favicon resolver from app state"""
    return request.app.state.favicon_resolver


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""

    # STARTUP
    logger.info(f"Starting application: env={settings.app_env}, port={settings.port}")

    if settings.is_production and settings.log_level.upper() == "DEBUG":
        logger.critical("LOG_LEVEL=DEBUG is not allowed in production")
        raise RuntimeError("LOG_LEVEL=DEBUG in production")

    client_config = HttpClientConfig.from_settings(settings)
    session = create_session(client_config)
    fetcher = HttpImageFetcher(session, client_config)
    transcoder = ImageTranscoder(get_image_config())

    primary, secondary = default_providers(settings)

    fastapi_app.state.http_session = session
    fastapi_app.state.image_service = ImageTransformService(
        fetcher=fetcher,
        transcoder=transcoder,
        proxy_fallback_url=settings.proxy_fallback_url,
        image_fallback_url=settings.image_fallback_url,
    )
    fastapi_app.state.favicon_resolver = FaviconResolver(
        fetcher=fetcher,
        primary=primary,
        secondary=secondary,
        icon_size=settings.favicon_icon_size,
        min_domain_length=settings.favicon_min_domain_length,
    )

    if settings.image_fallback_url:
        logger.info(f"Fallback image for non-http urls: {settings.image_fallback_url}")
    logger.info(f"Proxy fallback: {settings.proxy_fallback_url}")
    logger.info("Application startup complete")

    yield

    # SHUTDOWN
    logger.info("Shutting down application")
    await close_session(fastapi_app.state.http_session)
    logger.info("Application shutdown complete")


# ============================================================================
# CREATE APP
# ============================================================================

app = FastAPI(
    title="Image Proxy",
    description="On-demand image resize and re-encode proxy",
    version="1.1.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)

# Images are embedded cross-origin; only GET is ever needed
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
)
app.add_middleware(ResponseHeadersMiddleware)
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
app.add_middleware(RequestIDMiddleware)


# ============================================================================
# RESPONSE HELPERS
# ============================================================================

def image_response(payload: EncodedPayload) -> Response:
    return Response(
        content=payload.data,
        media_type=payload.content_type,
        headers={
            "Cache-Control": settings.cache_control_success,
            "x-server": settings.server_header,
        },
    )


def image_failure_response() -> Response:
    return Response(
        status_code=400,
        headers={"Cache-Control": settings.cache_control_failure},
    )


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed query parameters are a plain 400, never a 422"""
    logger.warning(f"Invalid query on {request.url.path}: {exc.errors()}")
    if request.url.path in IMAGE_PATHS:
        return image_failure_response()
    return Response(status_code=400)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with appropriate logging"""
    if exc.status_code >= 500:
        logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/", include_in_schema=False)
def root_public():
    """Liveness probe (plain text)."""
    return PlainTextResponse("Ok")


@app.get("/health")
def health():
    """Basic health check for load balancers."""
    return {"status": "healthy"}


@app.get("/img")
async def resize_image(
    query: Annotated[ImageQuery, Query()],
    service: ImageTransformService = Depends(get_image_service),
):
    """
    Resize a remote image to fit inside ``w`` x ``h``.

    Any failure is a 400 with a short cache lifetime so transient
    upstream errors heal on their own.
    """
    with AppMetrics.track_transform_time("img"):
        try:
            payload = await service.transform(query.to_source_request())
        except PipelineError as e:
            AppMetrics.image_request("img", type(e).__name__)
            return image_failure_response()

    AppMetrics.image_request("img", "ok")
    return image_response(payload)


@app.get("/dim", response_model=DimensionsOut)
async def image_dimensions(
    query: Annotated[DimensionQuery, Query()],
    service: ImageTransformService = Depends(get_image_service),
):
    """Natural width/height of a remote image."""
    try:
        size = await service.probe(query.to_source_request())
    except PipelineError as e:
        AppMetrics.image_request("dim", type(e).__name__)
        return image_failure_response()

    AppMetrics.image_request("dim", "ok")
    return DimensionsOut(width=size.width, height=size.height)


@app.get("/favicon")
async def favicon(
    query: Annotated[FaviconQuery, Query()],
    resolver: FaviconResolver = Depends(get_favicon_resolver),
):
    """Favicon for ``domain``: 400 on a bad domain, 500 if no provider answers."""
    try:
        payload = await resolver.resolve(query.domain)
    except UpstreamUnavailableError:
        return Response(status_code=500)
    except PipelineError as e:
        return Response(status_code=e.status_code)

    return image_response(payload)


@app.get("/metrics")
def metrics():
    """In-process counters and latency histograms."""
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Not found")
    return get_metrics_collector().get_metrics()


@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
async def catch_all(path: str):
    """Generic 404 for undefined endpoints."""
    logger.warning(f"404 - Unknown route accessed: {path}")
    raise HTTPException(status_code=404, detail="Not found")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.transport.http_app:app",
        host="0.0.0.0",
        port=settings.port,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,  # Middleware logs requests in prod
        server_header=False,
        date_header=False,
    )
