"""Attachment normalization: JPEG, bounded dimensions, bounded size."""
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

MIN_QUALITY = 40
MIN_DIMENSION = 64


def compress_image(data: bytes, max_bytes: int = 1024 * 1024, max_dimension: int = 1200) -> bytes:
    """
    Re-encode an image as JPEG no larger than ``max_dimension`` on its longest
    side, lowering quality and then size until it fits in ``max_bytes``.
    """
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError("Attachment is not a readable image") from e

    image = ImageOps.exif_transpose(image)
    if image.mode != "RGB":
        image = image.convert("RGB")
    image.thumbnail((max_dimension, max_dimension))

    quality = 90
    while True:
        buffer = BytesIO()
        image.save(buffer, format="JPEG", quality=quality, optimize=True)
        encoded = buffer.getvalue()
        if len(encoded) <= max_bytes:
            return encoded

        if quality > MIN_QUALITY:
            quality -= 10
            continue

        width, height = image.size
        if max(width, height) <= MIN_DIMENSION:
            return encoded
        image = image.resize((max(int(width * 0.8), 1), max(int(height * 0.8), 1)))
