# app/infra/image_processor.py
"""
Decode / resample / encode for remote images.

Pipeline for one call:
1. Decode: container format sniffed from the bytes by Pillow (never from
   the URL or a declared Content-Type). Truncated data is rejected.
2. Resample: Lanczos, always, in both scale directions.
3. Encode: JPEG at a fixed quality; if that fails for any reason the same
   resampled image is encoded as PNG. The payload's content type reflects
   whichever encoder succeeded.

``ImageTranscoder`` is the process-wide engine: built once at startup,
stateless afterwards, safe to share between concurrent requests since
every call works on its own ``DecodedImage``.
"""
from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image, ImageFile

from app.core.domain import (
    JPEG_CONTENT_TYPE,
    PNG_CONTENT_TYPE,
    DecodedImage,
    EncodedPayload,
    TargetDimensions,
)
from app.core.errors import ImageDecodeError, ImageEncodeError
from app.infra.logging_config import get_logger
from app.infra.metrics import AppMetrics

logger = get_logger(__name__)

# Do NOT allow truncated images: a partial download would otherwise be
# served with a grey band at the bottom.
ImageFile.LOAD_TRUNCATED_IMAGES = False

# Modes Pillow resamples with nearest-neighbour only; widened on decode
_MODE_WIDENING = {
    "1": "L",
    "P": "RGB",
    "PA": "RGBA",
    "I;16": "I",
    "I;16B": "I",
    "I;16L": "I",
}

# PNG zlib level 6 is libpng's default; filter selection stays adaptive
PNG_COMPRESS_LEVEL = 6


@dataclass
class ImageConfig:
    """Configuration for the transcoder"""
    jpeg_quality: int = 80
    max_pixels: int = 50_000_000  # Decompression bomb guard (parse limit)


def get_image_config() -> ImageConfig:
    """Build ImageConfig from application settings."""
    from app.config import settings

    return ImageConfig(
        jpeg_quality=settings.jpeg_quality,
        max_pixels=settings.image_max_pixels,
    )


class ImageTranscoder:
    """Decode, resample and re-encode raster images with Pillow."""

    def __init__(self, config: ImageConfig | None = None):
        self.config = config or ImageConfig()

        # Register every installed codec plugin up front instead of on first open
        Image.init()
        Image.MAX_IMAGE_PIXELS = self.config.max_pixels

        logger.debug(
            f"Image transcoder ready: jpeg_quality={self.config.jpeg_quality}, "
            f"max_pixels={self.config.max_pixels:,}, decoders={len(Image.OPEN)}"
        )

    # ------------------------------------------------------------------
    # Decode
    # ------------------------------------------------------------------

    def decode(self, data: bytes) -> DecodedImage:
        """
        Decode raw bytes into a pixel buffer.

        Raises:
            ImageDecodeError: unknown format, corrupted/truncated data,
                or an image over the pixel limit
        """
        if not data:
            raise ImageDecodeError("Empty image body", size_bytes=0)

        try:
            img = Image.open(io.BytesIO(data))
            source_format = img.format
            self._check_pixel_limit(img.width, img.height, len(data))
            img.load()
        except Image.DecompressionBombError as e:
            raise ImageDecodeError(f"Decompression bomb detected: {e}", size_bytes=len(data)) from e
        except Image.UnidentifiedImageError as e:
            raise ImageDecodeError("Unable to detect image format from content", size_bytes=len(data)) from e
        except (OSError, SyntaxError, ValueError) as e:
            # Pillow plugins raise all three for corrupted/truncated input
            logger.warning(f"Image parsing error (possible malformed file): {e}")
            raise ImageDecodeError(f"Failed to decode image: {e}", size_bytes=len(data)) from e
        except MemoryError as e:
            logger.error(f"Memory error during image decode: {e}")
            raise ImageDecodeError("Image too large to decode", size_bytes=len(data)) from e

        widened = self._widen_mode(img)
        width, height = widened.size

        logger.debug(
            f"Decoded {source_format} image: {width}x{height}, mode={img.mode}"
            + (f"->{widened.mode}" if widened.mode != img.mode else "")
        )
        return DecodedImage(width=width, height=height, image=widened, source_format=source_format)

    def read_dimensions(self, data: bytes) -> TargetDimensions:
        """
        Natural size from the image header, without decoding pixel data.

        Raises:
            ImageDecodeError: unknown format or unreadable header
        """
        try:
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
        except Image.DecompressionBombError as e:
            raise ImageDecodeError(f"Decompression bomb detected: {e}", size_bytes=len(data)) from e
        except (OSError, SyntaxError, ValueError) as e:
            raise ImageDecodeError(f"Failed to read image header: {e}", size_bytes=len(data)) from e
        return TargetDimensions(width, height)

    def _check_pixel_limit(self, width: int, height: int, size_bytes: int) -> None:
        # Pillow only raises above 2x MAX_IMAGE_PIXELS; enforce the limit itself
        if width * height > self.config.max_pixels:
            raise ImageDecodeError(
                f"Image has {width * height:,} pixels, exceeds limit of {self.config.max_pixels:,}",
                size_bytes=size_bytes,
            )

    @staticmethod
    def _widen_mode(img: Image.Image) -> Image.Image:
        if img.mode == "P" and "transparency" in img.info:
            return img.convert("RGBA")
        target_mode = _MODE_WIDENING.get(img.mode)
        if target_mode is None:
            return img
        return img.convert(target_mode)

    # ------------------------------------------------------------------
    # Resample
    # ------------------------------------------------------------------

    def resize(self, decoded: DecodedImage, target: TargetDimensions) -> Image.Image:
        """Resample to exactly ``target`` with Lanczos."""
        if (decoded.width, decoded.height) == tuple(target):
            return decoded.image
        return decoded.image.resize(tuple(target), Image.Resampling.LANCZOS)

    # ------------------------------------------------------------------
    # Encode
    # ------------------------------------------------------------------

    def encode(self, img: Image.Image) -> EncodedPayload:
        """
        Encode as JPEG, falling back to PNG on the same pixel buffer.

        Raises:
            ImageEncodeError: both encoders failed
        """
        try:
            return EncodedPayload(data=self._encode_jpeg(img), content_type=JPEG_CONTENT_TYPE)
        except (OSError, ValueError, KeyError) as jpeg_error:
            # e.g. "cannot write mode RGBA as JPEG"
            logger.warning(
                f"Failed encoding {img.width}x{img.height} {img.mode} image as JPEG, "
                f"falling back to PNG: {jpeg_error}"
            )
            AppMetrics.encode_fallback()

        try:
            return EncodedPayload(data=self._encode_png(img), content_type=PNG_CONTENT_TYPE)
        except (OSError, ValueError, KeyError) as png_error:
            logger.error(f"Error encoding {img.width}x{img.height} {img.mode} image as PNG: {png_error}")
            raise ImageEncodeError(
                f"No encoder accepted the image: {png_error}",
                width=img.width,
                height=img.height,
                mode=img.mode,
            ) from png_error

    def _encode_jpeg(self, img: Image.Image) -> bytes:
        output = io.BytesIO()
        img.save(output, format="JPEG", quality=self.config.jpeg_quality)
        return output.getvalue()

    @staticmethod
    def _encode_png(img: Image.Image) -> bytes:
        output = io.BytesIO()
        img.save(output, format="PNG", compress_level=PNG_COMPRESS_LEVEL)
        return output.getvalue()

    # ------------------------------------------------------------------
    # Whole transform
    # ------------------------------------------------------------------

    def render(self, decoded: DecodedImage, target: TargetDimensions) -> EncodedPayload:
        """Resample an already-decoded image and encode it."""
        payload = self.encode(self.resize(decoded, target))

        logger.debug(
            f"Image transcoded: {decoded.width}x{decoded.height} -> "
            f"{target.width}x{target.height}, {payload.content_type}, {payload.size_bytes} bytes"
        )
        return payload

    def transform(self, data: bytes, target: TargetDimensions) -> EncodedPayload:
        """Decode, resample to ``target`` and encode."""
        return self.render(self.decode(data), target)
