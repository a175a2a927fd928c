"""Unit tests for image input preparation."""

import base64
from io import BytesIO
from unittest.mock import patch

import pytest
from PIL import Image

from pantry_ai.clients.images import (
    compress_image,
    decode_image,
    prepare_image,
    safe_execute_sync,
    validate_image_format,
    validate_image_size,
)
from pantry_ai.utils.errors import InvalidImageError


def _png_bytes(size=(2000, 1000), mode="RGBA") -> bytes:
    output = BytesIO()
    Image.new(mode, size, (200, 50, 50, 255) if mode == "RGBA" else (200, 50, 50)).save(output, format="PNG")
    return output.getvalue()


class TestDecodeImage:
    """Test base64 / data URL decoding."""

    def test_plain_base64(self, jpeg_base64):
        assert decode_image(jpeg_base64).startswith(b"\xff\xd8\xff")

    def test_data_url(self, jpeg_base64):
        assert decode_image(f"data:image/jpeg;base64,{jpeg_base64}").startswith(b"\xff\xd8\xff")

    def test_raw_bytes_pass_through(self):
        assert decode_image(b"\x89PNG") == b"\x89PNG"

    @pytest.mark.parametrize("bad", ["", "!!!not-base64!!!", 123])
    def test_invalid_input(self, bad):
        with pytest.raises(InvalidImageError):
            decode_image(bad)


class TestValidateImage:
    """Test format and size validation."""

    def test_valid_jpeg(self):
        assert validate_image_format(b"\xff\xd8\xff\xe0\x00\x10JFIF" + b"\x00" * 16) == "image/jpeg"

    def test_valid_png(self):
        assert validate_image_format(_png_bytes((10, 10))) == "image/png"

    def test_invalid_format_is_value_error(self):
        """Invalid images are ValueErrors so callers can treat them as bad input."""
        with pytest.raises(ValueError):
            validate_image_format(b"GIF89a" + b"\x00" * 16)

    def test_size_limit(self):
        validate_image_size(b"\x00" * 1024, max_size_mb=1)
        with pytest.raises(InvalidImageError, match="exceeds limit"):
            validate_image_size(b"\x00" * (1024 * 1024 + 1), max_size_mb=1)


class TestCompressImage:
    """Test Pillow re-compression."""

    def test_below_threshold_is_untouched(self):
        data = _png_bytes((10, 10))
        assert compress_image(data, threshold_kb=10_000) is data

    def test_resizes_and_converts_to_jpeg(self):
        compressed = compress_image(_png_bytes(), threshold_kb=0, max_width=500)

        img = Image.open(BytesIO(compressed))
        assert img.format == "JPEG"
        assert img.size == (500, 250)

    def test_failure_returns_original(self):
        garbage = b"\xff\xd8\xff" + b"\x00" * 2048
        assert compress_image(garbage, threshold_kb=0) == garbage


class TestPrepareImage:
    def test_builds_data_url(self, test_config, jpeg_base64):
        test_config.COMPRESS_IMG = False
        prepared = prepare_image(jpeg_base64, test_config)

        assert prepared.mime_type == "image/jpeg"
        assert prepared.data_url == f"data:image/jpeg;base64,{jpeg_base64}"

    def test_compressed_png_becomes_jpeg(self, test_config):
        test_config.COMPRESS_IMG = True
        test_config.COMPRESS_IMG_THRESHOLD_KB = 0
        prepared = prepare_image(base64.b64encode(_png_bytes()).decode(), test_config)

        assert prepared.mime_type == "image/jpeg"
        assert prepared.data_url.startswith("data:image/jpeg;base64,")

    def test_rejects_oversized_image(self, test_config, jpeg_base64):
        test_config.MAX_IMAGE_SIZE_MB = 1
        big = base64.b64encode(b"\xff\xd8\xff\xe0\x00\x10JFIF" + b"\x00" * (2 * 1024 * 1024)).decode()
        with pytest.raises(InvalidImageError):
            prepare_image(big, test_config)


class TestSafeExecuteSync:
    def test_returns_result(self):
        assert safe_execute_sync(lambda: 42, "Answer") == 42

    def test_failure_logs_and_returns_default(self):
        with patch("pantry_ai.clients.images.logger") as mock_logger:
            result = safe_execute_sync(lambda: 1 / 0, "Image compression", log_level="error", default_return=b"raw")

        assert result == b"raw"
        mock_logger.error.assert_called_once()
        assert "Image compression" in mock_logger.error.call_args.args[0]
