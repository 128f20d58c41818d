# app/core/errors.py
"""
Typed errors for the image pipeline.

Component errors (fetch, size, transcode) carry structured context so
tests and logs can inspect them without parsing messages. The pipeline
translates them into ``PipelineError`` subtypes; the transport layer
converts those into HTTP responses without embedding pipeline logic in
the route handlers.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.core.domain import BoundingBox


# ============================================================================
# SIZE RESOLUTION
# ============================================================================

class InvalidSizeError(ValueError):
    """Bounding box contains a zero (or negative) dimension."""

    def __init__(self, box: "BoundingBox"):
        self.box = box
        super().__init__(f"Size {box} is not valid")


# ============================================================================
# TRANSCODING
# ============================================================================

class TranscodeError(Exception):
    """Base class for decode/encode failures."""
    pass


class ImageDecodeError(TranscodeError):
    """Fetched bytes could not be decoded as a raster image."""

    def __init__(self, message: str, size_bytes: int = 0):
        self.size_bytes = size_bytes
        super().__init__(message)


class ImageEncodeError(TranscodeError):
    """Neither the JPEG nor the PNG encoder produced output."""

    def __init__(self, message: str, width: int = 0, height: int = 0, mode: str = ""):
        self.width = width
        self.height = height
        self.mode = mode
        super().__init__(message)


# ============================================================================
# PIPELINE
# ============================================================================

class PipelineError(Exception):
    """Base class for all pipeline outcomes that are not a payload."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class BadRequestError(PipelineError):
    """Malformed url/domain or invalid bounding box (400)."""

    status_code = 400


class UpstreamUnavailableError(PipelineError):
    """Primary and fallback fetches both failed (502)."""

    status_code = 502


class UnprocessableImageError(PipelineError):
    """Bytes fetched but not decodable, or no encoder succeeded (422)."""

    status_code = 422
