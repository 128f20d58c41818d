# app/core/domain.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional

from PIL import Image


JPEG_CONTENT_TYPE = "image/jpeg"
PNG_CONTENT_TYPE = "image/png"
ICON_CONTENT_TYPE = "image/x-icon"


# ============================================================================
# SIZE CONSTRAINTS
# ============================================================================

class Constraint(str, Enum):
    """Which dimensions of a bounding box the caller supplied."""
    UNCONSTRAINED = "unconstrained"
    WIDTH_ONLY = "width_only"
    HEIGHT_ONLY = "height_only"
    BOTH = "both"


@dataclass(frozen=True)
class BoundingBox:
    """
    Caller-supplied maximum output size.

    A missing dimension means "no constraint on that axis"; a box with
    both dimensions missing means "no resize".
    """
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def constraint(self) -> Constraint:
        if self.width is None and self.height is None:
            return Constraint.UNCONSTRAINED
        if self.height is None:
            return Constraint.WIDTH_ONLY
        if self.width is None:
            return Constraint.HEIGHT_ONLY
        return Constraint.BOTH

    @property
    def has_non_positive(self) -> bool:
        """True when any supplied dimension is zero (or negative)."""
        return any(d is not None and d <= 0 for d in (self.width, self.height))


class TargetDimensions(NamedTuple):
    """Resolved output size in pixels."""
    width: int
    height: int


# ============================================================================
# REQUEST / RESULT TYPES
# ============================================================================

@dataclass(frozen=True)
class SourceRequest:
    """A single image transform request, as handed over by the HTTP layer."""
    url: str
    box: BoundingBox = field(default_factory=BoundingBox)

    def normalized_url(self) -> str:
        """Protocol-relative URLs (``//host/x``) are upgraded to https."""
        if self.url.startswith("//"):
            return f"https:{self.url}"
        return self.url


@dataclass
class DecodedImage:
    """Decoded pixel buffer, owned by a single transform call."""
    width: int
    height: int
    image: Image.Image
    source_format: Optional[str] = None  # e.g. "JPEG", "PNG", "GIF" as sniffed by Pillow


@dataclass(frozen=True)
class EncodedPayload:
    """Terminal artifact returned to the HTTP layer."""
    data: bytes
    content_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)
