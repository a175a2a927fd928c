"""Image input preparation for vision requests.

Turns whatever the caller holds (raw bytes, a bare base64 string or a
``data:`` URL) into validated bytes plus the ``data:<mime>;base64,...`` URL
the chat endpoint expects.

Core Functions:
- decode_image(): bytes from base64 / data URL
- validate_image_format(): JPEG, PNG or WEBP by magic bytes
- validate_image_size(): MAX_IMAGE_SIZE_MB limit
- compress_image(): optional Pillow re-encode, original bytes on failure
- prepare_image(): all of the above, raising InvalidImageError
"""

import base64
import binascii
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, Optional

import filetype
from PIL import Image

from pantry_ai.utils.config import Config, config as default_config
from pantry_ai.utils.errors import InvalidImageError
from pantry_ai.utils.logger import logger


SUPPORTED_IMAGE_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}


# ============================================================================
# Error Handling Helpers
# ============================================================================


def _log_error(operation_name: str, exception: Exception, log_level: str = "warning") -> None:
    msg = f"{operation_name}: {exception}"
    if log_level == "debug":
        logger.debug(msg)
    elif log_level == "error":
        logger.error(msg)
    else:
        logger.warning(msg)


def safe_execute_sync(
    func: Callable[[], Any],
    operation_name: str,
    log_level: str = "warning",
    default_return: Any = None,
) -> Any:
    """Execute a sync operation with consistent error logging.

    Used for optional steps that should degrade gracefully (compression,
    alternative JSON parsing strategies).

    Args:
        func: Callable to execute (no args).
        operation_name: Description for logging.
        log_level: Logging level ("debug", "warning", "error"). Default: "warning".
        default_return: Value to return on exception. Default: None.

    Returns:
        Result of func, or default_return on exception.
    """
    try:
        return func()
    except Exception as e:
        _log_error(operation_name, e, log_level)
        return default_return


# ============================================================================
# Decoding and validation
# ============================================================================


@dataclass(frozen=True)
class PreparedImage:
    data: bytes
    mime_type: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"


def decode_image(image: str | bytes) -> bytes:
    """Decode raw bytes, a base64 string or a data URL into image bytes.

    Raises:
        InvalidImageError: If the input is empty or not valid base64.
    """
    if isinstance(image, bytes):
        data = image
    elif isinstance(image, str):
        encoded = image.split(",", 1)[1] if image.startswith("data:") else image
        try:
            data = base64.b64decode(encoded.strip(), validate=False)
        except (binascii.Error, ValueError) as e:
            raise InvalidImageError(f"Image is not valid base64: {e}") from e
    else:
        raise InvalidImageError(f"Unsupported image input type: {type(image).__name__}")

    if not data:
        raise InvalidImageError("Image data is empty")
    return data


def validate_image_format(image_bytes: bytes) -> str:
    """Detect the image format from magic bytes.

    Returns:
        MIME type of the image.

    Raises:
        InvalidImageError: If the format is not JPEG, PNG or WEBP.
    """
    kind = filetype.guess(image_bytes)
    if kind is None or kind.extension not in SUPPORTED_IMAGE_TYPES:
        raise InvalidImageError(f"Invalid image format: {kind.mime if kind else 'unknown'}. Only JPEG, PNG and WEBP supported.")
    return SUPPORTED_IMAGE_TYPES[kind.extension]


def validate_image_size(image_bytes: bytes, max_size_mb: int) -> None:
    size_mb = len(image_bytes) / (1024 * 1024)
    if size_mb > max_size_mb:
        raise InvalidImageError(f"Image size {size_mb:.2f}MB exceeds limit of {max_size_mb}MB")


def compress_image(image_bytes: bytes, threshold_kb: int, max_width: int = 1024) -> bytes:
    """Re-encode an image as JPEG (quality 85, optimized, progressive) using Pillow.

    Images below ``threshold_kb`` are returned untouched. RGBA/LA/P images are
    flattened onto white and wide images are resized to ``max_width``. Any
    Pillow failure returns the original bytes.
    """
    size_kb = len(image_bytes) / 1024
    if size_kb < threshold_kb:
        logger.debug(f"Image size {size_kb:.1f}KB below compression threshold ({threshold_kb}KB), skipping compression")
        return image_bytes

    def _compress() -> bytes:
        img = Image.open(BytesIO(image_bytes))

        if img.mode in ("RGBA", "LA", "P"):
            rgb_img = Image.new("RGB", img.size, (255, 255, 255))
            if img.mode == "RGBA":
                rgb_img.paste(img, mask=img.split()[-1])
            else:
                rgb_img.paste(img)
            img = rgb_img
        elif img.mode != "RGB":
            img = img.convert("RGB")

        if img.width > max_width:
            ratio = max_width / img.width
            img = img.resize((max_width, int(img.height * ratio)), Image.Resampling.LANCZOS)

        output = BytesIO()
        img.save(output, format="JPEG", quality=85, optimize=True, progressive=True)
        compressed = output.getvalue()
        logger.debug(f"Image compressed: {size_kb:.1f}KB → {len(compressed) / 1024:.1f}KB")
        return compressed

    return safe_execute_sync(_compress, "Image compression", log_level="warning", default_return=image_bytes)


def prepare_image(image: str | bytes, cfg: Optional[Config] = None) -> PreparedImage:
    """Decode, validate and optionally compress an image for a vision request.

    Args:
        image: Raw bytes, base64 string or ``data:`` URL.
        cfg: Configuration supplying size limit and compression settings.

    Returns:
        PreparedImage with the bytes to send and their MIME type.

    Raises:
        InvalidImageError: If the image cannot be decoded, has an unsupported
            format or exceeds MAX_IMAGE_SIZE_MB.
    """
    cfg = cfg or default_config
    image_bytes = decode_image(image)
    mime_type = validate_image_format(image_bytes)
    validate_image_size(image_bytes, cfg.MAX_IMAGE_SIZE_MB)

    if cfg.COMPRESS_IMG:
        compressed = compress_image(image_bytes, cfg.COMPRESS_IMG_THRESHOLD_KB)
        if compressed is not image_bytes:
            return PreparedImage(data=compressed, mime_type="image/jpeg")
    return PreparedImage(data=image_bytes, mime_type=mime_type)
