# app/core/sizing.py
"""
Bounding-box size resolution.

Policy: fit inside the box, preserve aspect ratio, downscale only.

Decision table (``BoundingBox.constraint``):

    UNCONSTRAINED  -> original size
    any dim <= 0   -> InvalidSizeError
    BOTH           -> original if both box dims exceed the original,
                      else the more constraining axis drives
    WIDTH_ONLY     -> original if wider than original, else width drives
    HEIGHT_ONLY    -> original if taller than original, else height drives

The derived dimension is truncated toward zero, not rounded.
"""
from __future__ import annotations

from app.core.domain import BoundingBox, Constraint, TargetDimensions
from app.core.errors import InvalidSizeError


def scale_dimension(desired: int, original: int, opposite_original: int) -> int:
    """Scale ``opposite_original`` by ``desired / original``, truncating.

    The result is floored at 1 px so a very thin source never produces
    an empty image.
    """
    ratio = desired / original
    return max(1, int(opposite_original * ratio))


def validate_box(box: BoundingBox) -> None:
    """Raises InvalidSizeError if a supplied dimension is zero or negative."""
    if box.has_non_positive:
        raise InvalidSizeError(box)


def _width_driven(width: int, original_width: int, original_height: int) -> TargetDimensions:
    return TargetDimensions(width, scale_dimension(width, original_width, original_height))


def _height_driven(height: int, original_width: int, original_height: int) -> TargetDimensions:
    return TargetDimensions(scale_dimension(height, original_height, original_width), height)


def resolve_target_size(
    original_width: int,
    original_height: int,
    box: BoundingBox,
) -> TargetDimensions:
    """
    Compute the output size for an image of ``original_width x original_height``.

    Raises:
        InvalidSizeError: a supplied box dimension is zero or negative
    """
    original = TargetDimensions(original_width, original_height)
    constraint = box.constraint

    if constraint is Constraint.UNCONSTRAINED:
        return original

    validate_box(box)

    if constraint is Constraint.BOTH:
        if box.width > original_width and box.height > original_height:
            return original

        scale_height = box.height / original_height
        scale_width = box.width / original_width

        # Strict "<": equal scales resolve to the width-driven branch
        if scale_height < scale_width and scale_height <= 1.0:
            return _height_driven(box.height, original_width, original_height)
        return _width_driven(box.width, original_width, original_height)

    if constraint is Constraint.WIDTH_ONLY:
        if box.width > original_width:
            return original
        return _width_driven(box.width, original_width, original_height)

    # HEIGHT_ONLY
    if box.height > original_height:
        return original
    return _height_driven(box.height, original_width, original_height)
