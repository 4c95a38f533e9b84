"""
Image capture & normalization tests (Pillow).

Covers:
  - downscale to the bounding box with aspect ratio kept, JPEG output
  - small images are not upscaled
  - transparency flattened onto white
  - undecodable bytes raise ImageProcessingError
  - process_batch: per-file failures do not abort the batch, count and size
    limits, selection order, yield between files
"""

import base64
from io import BytesIO

import pytest
from PIL import Image

from commissioning.core.exceptions import ImageProcessingError
from commissioning.editor.images import DATA_URL_PREFIX, normalize_image, process_batch


def _png(size=(40, 20), color=(200, 30, 30), mode="RGB"):
    buf = BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return buf.getvalue()


def _decode(data_url):
    assert data_url.startswith(DATA_URL_PREFIX)
    return Image.open(BytesIO(base64.b64decode(data_url[len(DATA_URL_PREFIX):])))


class TestNormalizeImage:
    def test_downscales_preserving_aspect_ratio(self):
        img = _decode(normalize_image(_png((2400, 1200)), max_dimension=1200))
        assert img.format == "JPEG"
        assert img.size == (1200, 600)

    def test_portrait_bound_by_height(self):
        img = _decode(normalize_image(_png((300, 900)), max_dimension=600))
        assert img.size == (200, 600)

    def test_small_image_not_upscaled(self):
        img = _decode(normalize_image(_png((40, 20))))
        assert img.size == (40, 20)

    def test_transparency_becomes_white(self):
        img = _decode(normalize_image(_png((16, 16), (0, 0, 0, 0), mode="RGBA")))
        assert img.mode == "RGB"
        r, g, b = img.getpixel((8, 8))
        assert min(r, g, b) >= 245

    def test_undecodable_bytes(self):
        with pytest.raises(ImageProcessingError) as exc_info:
            normalize_image(b"definitely not an image", filename="broken.jpg")
        assert exc_info.value.filename == "broken.jpg"


class TestProcessBatch:
    def test_bad_file_does_not_abort_batch(self):
        result = process_batch([
            ("a.png", _png(color=(255, 0, 0))),
            ("broken.jpg", b"garbage"),
            ("c.png", _png(color=(0, 0, 255))),
        ])
        assert len(result.images) == 2
        assert [e.filename for e in result.errors] == ["broken.jpg"]
        # selection order kept
        assert _decode(result.images[0]).getpixel((5, 5))[0] > 200
        assert _decode(result.images[1]).getpixel((5, 5))[2] > 200

    def test_count_limit_counts_existing_images(self):
        result = process_batch(
            [("a.png", _png()), ("b.png", _png()), ("c.png", _png())],
            existing_count=8,
            max_count=10,
        )
        assert len(result.images) == 2
        assert [e.filename for e in result.errors] == ["c.png"]
        assert "maximum of 10" in result.errors[0].reason

    def test_oversized_file_skipped(self):
        small = _png((4, 4))
        large = _png((400, 400), (1, 2, 3))
        result = process_batch([("large.png", large), ("small.png", small)], max_file_size=len(small))
        assert len(result.images) == 1
        assert result.errors[0].filename == "large.png"

    def test_yield_between_files(self):
        calls = []
        process_batch([("a.png", _png()), ("b.png", _png()), ("c.png", _png())],
                      yield_fn=lambda: calls.append(1))
        assert len(calls) == 2

    def test_empty_batch(self):
        result = process_batch([])
        assert result.images == []
        assert result.errors == []
