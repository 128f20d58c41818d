# app/transport/middleware.py
"""
HTTP middleware stack.

Outermost first: RequestID -> RequestLogging -> ErrorHandling ->
ResponseHeaders -> CORS -> routes.
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.infra.logging_config import LogContext, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Caller-supplied ids longer than this are replaced
MAX_REQUEST_ID_LENGTH = 128


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Request-ID or mint one; echo it on the response"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        if not incoming or len(incoming) > MAX_REQUEST_ID_LENGTH:
            incoming = uuid.uuid4().hex
        request.state.request_id = incoming

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = incoming
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request with status and latency"""

    def __init__(self, app: ASGIApp, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled:
            return await call_next(request)

        log_ctx = LogContext(logger, request_id=_request_id(request))
        target = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            log_ctx.error(
                f"Request failed: {target} error={type(exc).__name__} duration={elapsed_ms:.1f}ms",
                extra={"duration_ms": elapsed_ms},
                exc_info=True,
            )
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        log_ctx.info(
            f"Request completed: {target} status={response.status_code} duration={elapsed_ms:.1f}ms",
            extra={"status_code": response.status_code, "duration_ms": elapsed_ms},
        )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Last-resort handler: unexpected exceptions become a JSON 500"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            request_id = _request_id(request)
            logger.exception(
                f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}",
                extra={"request_id": request_id},
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "request_id": request_id},
            )


class ResponseHeadersMiddleware(BaseHTTPMiddleware):
    """
    Common response headers.

    Image bodies come from untrusted origins, so browsers must not sniff
    them into another type. Routes that set Cache-Control keep theirs.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers.setdefault("Cache-Control", "no-store")
        return response
