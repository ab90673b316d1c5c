"""In-memory conversion of any supported image (RAW included) to JPEG bytes for a provider."""

from io import BytesIO
from pathlib import Path

import rawpy
from loguru import logger
from PIL import Image

from exif_ai.config import DEFAULT_DIMENSIONS, DEFAULT_JPEG_QUALITY


NON_RAW_EXTENSIONS = frozenset(
    {
        ".jpg",
        ".jpeg",
        ".jpe",
        ".png",
        ".webp",
        ".bmp",
        ".gif",
        ".jp2",
        ".tif",
        ".tiff",
        ".heic",
        ".heif",
        ".avif",
        ".psd",
        ".ico",
        ".ppm",
        ".pgm",
        ".pbm",
    },
)


def _pil_from_image_path(image_path: Path) -> Image.Image:
    """Open an image from a path with PIL, using rawpy unless format is known non-RAW."""
    suffix = image_path.suffix.lower()
    if suffix not in NON_RAW_EXTENSIONS:
        try:
            with rawpy.imread(str(image_path)) as raw:  # type: ignore[no-untyped-call]
                rgb = raw.postprocess()
            logger.debug("image_opened_with_rawpy")
            return Image.fromarray(rgb)
        except Exception as exc:  # noqa: BLE001
            logger.debug("rawpy_failed_falling_back_to_pil", error=str(exc))

    logger.debug("opening_image_with_pil", extension=suffix or "")
    return Image.open(image_path)


def prepare_image(
    image_path: Path,
    *,
    jpg_quality: int = DEFAULT_JPEG_QUALITY,
    max_size: int = DEFAULT_DIMENSIONS,
) -> bytes:
    """
    Load an image, flatten transparency onto white, downscale and encode to JPEG.

    Args:
        image_path: Path to the input image file
        jpg_quality: JPEG compression quality (1-100)
        max_size: Maximum width/height in pixels; smaller images are not enlarged

    Returns:
        JPEG-encoded bytes. No temporary files are created.

    """
    with _pil_from_image_path(image_path) as opened:
        if opened.mode in ("RGBA", "LA") or (opened.mode == "P" and "transparency" in opened.info):
            alpha = opened.convert("RGBA")
            bg = Image.new("RGBA", alpha.size, (255, 255, 255, 255))
            img = Image.alpha_composite(bg, alpha).convert("RGB")
        else:
            img = opened.convert("RGB")

    img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
    buf = BytesIO()
    img.save(buf, format="JPEG", quality=jpg_quality)
    jpeg_bytes = buf.getvalue()

    logger.debug(
        "image_prepared",
        width=img.width,
        height=img.height,
        size_kb=len(jpeg_bytes) // 1024,
    )
    return jpeg_bytes
