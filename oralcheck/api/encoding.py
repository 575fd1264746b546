from __future__ import annotations

import io
import logging

from PIL import Image, UnidentifiedImageError

from ..ai.types import EncodedImage
from ..errors import InvalidInput


logger = logging.getLogger(__name__)

DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024

SUPPORTED_FORMATS: dict[str, str] = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}


def encode_image(data: bytes, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> EncodedImage:
    """Validate an uploaded image and wrap it in the representation backends expect.

    Raises :class:`InvalidInput` for empty, oversized, undecodable or
    unsupported payloads. Blocking; run it in a worker thread from async code.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise InvalidInput(f"Image payload must be bytes, got {type(data).__name__}")
    payload = bytes(data)
    if not payload:
        raise InvalidInput("Image payload is empty")
    if max_bytes > 0 and len(payload) > max_bytes:
        raise InvalidInput(
            f"Image payload of {len(payload)} bytes exceeds limit of {max_bytes} bytes"
        )

    try:
        with Image.open(io.BytesIO(payload)) as image:
            image_format = image.format
            width, height = image.size
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise InvalidInput("Image payload could not be decoded") from exc
    except Image.DecompressionBombError as exc:
        raise InvalidInput("Image dimensions are too large") from exc

    mime_type = SUPPORTED_FORMATS.get(image_format or "")
    if mime_type is None:
        raise InvalidInput(
            f"Unsupported image format {image_format!r}; expected one of "
            + ", ".join(sorted(SUPPORTED_FORMATS))
        )

    logger.debug(
        "Encoded image format=%s size=%dx%d bytes=%d",
        image_format,
        width,
        height,
        len(payload),
    )
    return EncodedImage(mime_type=mime_type, data=payload, width=width, height=height)


__all__ = ["DEFAULT_MAX_IMAGE_BYTES", "SUPPORTED_FORMATS", "encode_image"]
