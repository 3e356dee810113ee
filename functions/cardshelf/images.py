"""
Re-encode uploaded images as PNG.
"""

from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from cardshelf.errors import ImageConversionError

logger = logging.getLogger(__name__)

# Modes Pillow can write to PNG without conversion.
PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


def to_png_bytes(data: bytes) -> bytes:
    """
    Decode ``data`` in any format Pillow reads and return it PNG-encoded at
    its natural size. EXIF orientation is applied first.
    """
    if not data:
        raise ImageConversionError("Image file is empty")
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            logger.debug("Converting %s %s image to PNG", image.format, image.size)
            converted = ImageOps.exif_transpose(image)
            if converted.mode not in PNG_MODES:
                converted = converted.convert("RGBA")
            output = io.BytesIO()
            converted.save(output, format="PNG")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageConversionError(f"Convert to PNG failed: {exc}") from exc
    return output.getvalue()
