import io
import logging

from PIL import Image

logger = logging.getLogger(__name__)


def resize_image_fill(image_bytes: bytes, width: int, height: int) -> bytes:
    """Stretch an image to exactly width x height and return JPEG bytes.

    Aspect ratio is not preserved: the generation API rejects references whose
    pixel size differs from the requested video size.
    """
    with Image.open(io.BytesIO(image_bytes)) as image:
        resized = image.convert("RGB").resize((width, height), Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    resized.save(buffer, format="JPEG", quality=95)
    logger.debug(f"Resized reference frame to {width}x{height}")
    return buffer.getvalue()
