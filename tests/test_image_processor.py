# tests/test_image_processor.py
"""
Tests for the Pillow transcoder (app/infra/image_processor.py).

All images are generated in memory; no network.
"""
from __future__ import annotations

import io
from unittest.mock import patch

import pytest
from PIL import Image

from app.core.domain import TargetDimensions
from app.core.errors import ImageDecodeError, ImageEncodeError
from app.infra.image_processor import ImageConfig, ImageTranscoder
from fakes import make_image_bytes


@pytest.fixture
def transcoder():
    return ImageTranscoder(ImageConfig(jpeg_quality=80))


def _open(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


# ============================================================================
# decode()
# ============================================================================

class TestDecode:
    @pytest.mark.parametrize("fmt", ["PNG", "JPEG", "GIF", "BMP", "WEBP"])
    def test_detects_format_from_content(self, transcoder, fmt):
        data = make_image_bytes(40, 20, fmt=fmt)
        decoded = transcoder.decode(data)
        assert (decoded.width, decoded.height) == (40, 20)
        assert decoded.source_format == fmt

    def test_rejects_garbage(self, transcoder):
        with pytest.raises(ImageDecodeError) as exc_info:
            transcoder.decode(b"<html>not an image</html>")
        assert exc_info.value.size_bytes == len(b"<html>not an image</html>")

    def test_rejects_empty(self, transcoder):
        with pytest.raises(ImageDecodeError):
            transcoder.decode(b"")

    def test_rejects_truncated_jpeg(self, transcoder):
        data = make_image_bytes(200, 200, fmt="JPEG")
        with pytest.raises(ImageDecodeError):
            transcoder.decode(data[: len(data) // 2])

    def test_rejects_over_pixel_limit(self):
        small_limit = ImageTranscoder(ImageConfig(max_pixels=100))
        try:
            with pytest.raises(ImageDecodeError):
                small_limit.decode(make_image_bytes(20, 20))
        finally:
            Image.MAX_IMAGE_PIXELS = ImageConfig().max_pixels

    def test_palette_widened_for_lanczos(self, transcoder):
        data = make_image_bytes(16, 16, fmt="GIF", mode="P")
        decoded = transcoder.decode(data)
        assert decoded.image.mode in ("RGB", "RGBA")

    def test_bilevel_widened(self, transcoder):
        data = make_image_bytes(16, 16, fmt="PNG", mode="1")
        assert transcoder.decode(data).image.mode == "L"


class TestReadDimensions:
    def test_reads_header(self, transcoder):
        assert transcoder.read_dimensions(make_image_bytes(123, 45)) == (123, 45)

    def test_garbage(self, transcoder):
        with pytest.raises(ImageDecodeError):
            transcoder.read_dimensions(b"nope")


# ============================================================================
# encode() / transform()
# ============================================================================

class TestTransform:
    def test_rgb_encodes_as_jpeg(self, transcoder):
        payload = transcoder.transform(make_image_bytes(200, 100), TargetDimensions(100, 50))
        assert payload.content_type == "image/jpeg"
        img = _open(payload.data)
        assert img.format == "JPEG"
        assert img.size == (100, 50)

    def test_rgba_falls_back_to_png(self, transcoder):
        data = make_image_bytes(200, 100, mode="RGBA")
        payload = transcoder.transform(data, TargetDimensions(50, 25))
        assert payload.content_type == "image/png"
        img = _open(payload.data)
        assert img.format == "PNG"
        assert img.size == (50, 25)
        assert img.mode == "RGBA"

    def test_transparent_gif_falls_back_to_png(self, transcoder):
        img = Image.new("P", (30, 30), 0)
        buf = io.BytesIO()
        img.save(buf, format="GIF", transparency=0)
        payload = transcoder.transform(buf.getvalue(), TargetDimensions(15, 15))
        assert payload.content_type == "image/png"
        assert _open(payload.data).size == (15, 15)

    def test_same_size_round_trip(self, transcoder):
        payload = transcoder.transform(make_image_bytes(64, 32, fmt="JPEG"), TargetDimensions(64, 32))
        assert _open(payload.data).size == (64, 32)

    @pytest.mark.parametrize("target", [(1, 1), (7, 3), (63, 31), (32, 16)])
    def test_output_matches_target(self, transcoder, target):
        payload = transcoder.transform(make_image_bytes(64, 32), TargetDimensions(*target))
        assert _open(payload.data).size == target

    def test_uses_lanczos(self, transcoder):
        decoded = transcoder.decode(make_image_bytes(64, 32))
        with patch.object(Image.Image, "resize", autospec=True, return_value=decoded.image) as mock_resize:
            transcoder.resize(decoded, TargetDimensions(32, 16))
        _, size, resample = mock_resize.call_args.args
        assert size == (32, 16)
        assert resample == Image.Resampling.LANCZOS

    def test_png_fallback_reuses_buffer(self, transcoder):
        img = Image.new("RGB", (10, 10))
        with patch.object(transcoder, "_encode_jpeg", side_effect=OSError("encoder broke")), \
                patch.object(transcoder, "_encode_png", return_value=b"png-bytes") as mock_png:
            payload = transcoder.encode(img)
        assert payload.content_type == "image/png"
        assert payload.data == b"png-bytes"
        mock_png.assert_called_once_with(img)

    def test_both_encoders_fail(self, transcoder):
        img = Image.new("RGB", (10, 10))
        with patch.object(transcoder, "_encode_jpeg", side_effect=OSError("jpeg")), \
                patch.object(transcoder, "_encode_png", side_effect=OSError("png")):
            with pytest.raises(ImageEncodeError) as exc_info:
                transcoder.encode(img)
        assert exc_info.value.width == 10
        assert exc_info.value.mode == "RGB"

    def test_float_image_cannot_be_encoded(self, transcoder):
        img = Image.new("F", (4, 4))
        with pytest.raises(ImageEncodeError):
            transcoder.encode(img)

    def test_jpeg_quality_applied(self):
        data = make_image_bytes(128, 128)
        low = ImageTranscoder(ImageConfig(jpeg_quality=10)).transform(data, TargetDimensions(128, 128))
        high = ImageTranscoder(ImageConfig(jpeg_quality=95)).transform(data, TargetDimensions(128, 128))
        assert low.size_bytes <= high.size_bytes
