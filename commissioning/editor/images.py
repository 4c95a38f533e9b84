"""
Image capture & normalization for checklist evidence photos.

Each accepted file is decoded, flattened onto white if it has transparency,
downscaled so neither side exceeds ``max_dimension`` (aspect ratio kept),
re-encoded as JPEG and returned as a self-contained ``data:`` URL.

Batches are processed one file at a time so only one decoded image is held
in memory; ``yield_fn`` runs between files. A bad file is reported and
skipped, the rest of the batch still goes through.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from commissioning.core.exceptions import ImageProcessingError

logger = logging.getLogger(__name__)

MAX_IMAGES_PER_ITEM = 10
MAX_IMAGE_FILE_SIZE = 10 * 1024 * 1024
IMAGE_MAX_DIMENSION = 1200
IMAGE_JPEG_QUALITY = 70

DATA_URL_PREFIX = "data:image/jpeg;base64,"


@dataclass
class BatchResult:
    images: list[str] = field(default_factory=list)
    errors: list[ImageProcessingError] = field(default_factory=list)


def _flatten(img: Image.Image) -> Image.Image:
    """Return an RGB image; transparent areas become white."""
    if img.mode == "P":
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def normalize_image(
    data: bytes,
    max_dimension: int = IMAGE_MAX_DIMENSION,
    quality: int = IMAGE_JPEG_QUALITY,
    filename: str = "image",
) -> str:
    """Decode, downscale and re-encode *data*; return a JPEG data URL.

    Raises:
        ImageProcessingError: the bytes are not a decodable image.
    """
    try:
        with Image.open(BytesIO(data)) as src:
            src.load()
            img = ImageOps.exif_transpose(src)
            img = _flatten(img)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageProcessingError(filename, "not a readable image") from exc

    if img.width > max_dimension or img.height > max_dimension:
        img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    output = BytesIO()
    img.save(output, format="JPEG", quality=quality, optimize=True)
    logger.debug("Normalized %s to %dx%d (%d bytes)", filename, img.width, img.height, output.tell())
    return DATA_URL_PREFIX + base64.b64encode(output.getvalue()).decode("ascii")


def process_batch(
    files: Iterable[tuple[str, bytes]],
    existing_count: int = 0,
    *,
    max_count: int = MAX_IMAGES_PER_ITEM,
    max_file_size: int = MAX_IMAGE_FILE_SIZE,
    max_dimension: int = IMAGE_MAX_DIMENSION,
    quality: int = IMAGE_JPEG_QUALITY,
    yield_fn: Callable[[], None] | None = None,
) -> BatchResult:
    """Normalize ``(filename, bytes)`` pairs in selection order.

    Files that would take the item past ``max_count`` images, files larger
    than ``max_file_size`` and undecodable files are skipped with an error.
    """
    result = BatchResult()
    for index, (filename, data) in enumerate(files):
        if index and yield_fn is not None:
            yield_fn()

        if existing_count + len(result.images) >= max_count:
            result.errors.append(ImageProcessingError(filename, f"maximum of {max_count} images per item"))
            continue
        if len(data) > max_file_size:
            size_mb = max_file_size / (1024 * 1024)
            result.errors.append(ImageProcessingError(filename, f"file is larger than {size_mb:g} MB"))
            continue
        try:
            result.images.append(normalize_image(data, max_dimension, quality, filename))
        except ImageProcessingError as exc:
            logger.warning("Skipping image %s: %s", filename, exc.reason)
            result.errors.append(exc)

    if result.errors:
        logger.info("Image batch: %d accepted, %d rejected", len(result.images), len(result.errors))
    return result
