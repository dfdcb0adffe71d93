"""Image preprocessing utilities.

Receipt photos straight from a phone camera are often rotated via EXIF
metadata and far larger than the vision model needs. The helpers here
normalise orientation and downscale the image before it is base64
encoded. Pillow is used as the imaging backend.
"""

from __future__ import annotations

import logging
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)


def preprocess_image(image_data: bytes, max_size: int = 2000) -> bytes:
    """Preprocess an image for receipt extraction.

    Applies EXIF orientation and resizes the longest edge to
    ``max_size`` pixels while maintaining aspect ratio. Colour is kept
    because the order number sits in a high-contrast box that survives
    JPEG better in RGB. Bytes Pillow cannot decode are returned
    unchanged so the model can reject them as illegible. Images over
    Pillow's pixel limit raise ``Image.DecompressionBombError``.

    :param image_data: Raw image bytes
    :param max_size: Maximum size of the longest edge in pixels
    :returns: Processed image bytes in JPEG format
    """
    try:
        with Image.open(BytesIO(image_data)) as img:
            img = ImageOps.exif_transpose(img)
            img = img.convert("RGB")
            width, height = img.size
            max_dim = max(width, height)
            if max_dim > max_size:
                scale = max_size / float(max_dim)
                img = img.resize((int(width * scale), int(height * scale)))
            buf = BytesIO()
            img.save(buf, format="JPEG", quality=90)
            return buf.getvalue()
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("[image] could not decode upload (%s); sending original bytes", exc)
        return image_data
