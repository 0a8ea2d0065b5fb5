"""
Pilbum Backend — Image Processing Service
===========================================

What:  Turns one uploaded image into the three renditions the gallery needs.
How:   Pillow (with pillow-heif registered for HEIC/HEIF) decodes the upload,
       applies the EXIF orientation, converts to RGB and encodes JPEGs.
Who:   PhotoService.upload_photo() and the recovery scan.

Renditions:
    full       ≤ FULL_MAX_WIDTH px wide, JPEG q85 progressive, never enlarged
    thumbnail  ≤ THUMBNAIL_MAX_WIDTH px wide, JPEG q75 progressive
    blur       BLUR_WIDTH px wide, JPEG q50, inlined as a base64 data URL

Pillow work is CPU-bound and blocks; process_image() runs it in a worker
thread so the event loop keeps serving other requests.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from pilbum.config import settings
from pilbum.exceptions import ValidationError

logger = logging.getLogger(__name__)

register_heif_opener()

HEIC_BRANDS = {"heic", "heix", "hevc", "hevx", "mif1", "msf1"}

# Decompression-bomb guard: 200 megapixels is well above any phone or DSLR
Image.MAX_IMAGE_PIXELS = 200_000_000


@dataclass
class ProcessedImage:
    full_bytes: bytes
    thumbnail_bytes: bytes
    blur_data_url: str
    width: int
    height: int
    format: str = "jpeg"


def is_heic_buffer(data: bytes) -> bool:
    """
    Detect HEIC/HEIF by magic bytes: 'ftyp' at offset 4 followed by a HEIC brand.
    """
    if len(data) < 12:
        return False
    if data[4:8] != b"ftyp":
        return False
    brand = data[8:12].decode("ascii", errors="replace").lower()
    return brand in HEIC_BRANDS


def open_image(data: bytes) -> Image.Image:
    """
    Decode bytes into a fully loaded Pillow image.

    Raises:
        ValidationError: The bytes are not an image Pillow (or pillow-heif) can read.
    """
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        logger.warning("Could not decode image (%d bytes, heic=%s): %s", len(data), is_heic_buffer(data), e)
        raise ValidationError(message="无法识别的图片文件", field="image") from e
    return image


def _resize_to_width(image: Image.Image, max_width: int, enlarge: bool = False) -> Image.Image:
    """Scale to max_width keeping the aspect ratio. Smaller images stay as-is unless enlarge."""
    width, height = image.size
    if width <= max_width and not enlarge:
        return image.copy()
    new_height = max(1, round(height * max_width / width))
    return image.resize((max_width, new_height), Image.Resampling.LANCZOS)


def _encode_jpeg(image: Image.Image, quality: int, progressive: bool = True) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="JPEG", quality=quality, progressive=progressive, optimize=True)
    return buffer.getvalue()


def _prepare(data: bytes) -> Image.Image:
    """Decode, apply EXIF orientation and flatten to RGB."""
    image = open_image(data)
    image = ImageOps.exif_transpose(image)
    if image.mode != "RGB":
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            # Flatten transparency onto white; JPEG has no alpha channel
            rgba = image.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            image = background
        else:
            image = image.convert("RGB")
    return image


def process_image_sync(data: bytes) -> ProcessedImage:
    """Blocking implementation of process_image()."""
    image = _prepare(data)

    full = _resize_to_width(image, settings.full_max_width)
    full_bytes = _encode_jpeg(full, settings.full_quality)

    thumbnail = _resize_to_width(image, settings.thumbnail_max_width)
    thumbnail_bytes = _encode_jpeg(thumbnail, settings.thumbnail_quality)

    # Placeholder is always BLUR_WIDTH wide, even for tiny sources
    blur = _resize_to_width(image, settings.blur_width, enlarge=True)
    blur_bytes = _encode_jpeg(blur, settings.blur_quality, progressive=False)
    blur_data_url = "data:image/jpeg;base64," + base64.b64encode(blur_bytes).decode("ascii")

    logger.debug(
        "Processed image %dx%d → full %dx%d (%d bytes), thumb %d bytes",
        image.width, image.height, full.width, full.height, len(full_bytes), len(thumbnail_bytes),
    )

    return ProcessedImage(
        full_bytes=full_bytes,
        thumbnail_bytes=thumbnail_bytes,
        blur_data_url=blur_data_url,
        width=full.width,
        height=full.height,
    )


async def process_image(data: bytes) -> ProcessedImage:
    """
    Produce full, thumbnail and blur renditions of an uploaded image.

    Raises:
        ValidationError: Undecodable input.
    """
    return await asyncio.to_thread(process_image_sync, data)


def read_dimensions(data: bytes) -> Tuple[int, int]:
    """Pixel size of an already-processed JPEG (used by the recovery scan)."""
    with Image.open(BytesIO(data)) as image:
        return image.size


# ── Human-readable sizes ──────────────────────────────────────────────────

def format_file_size(size: Optional[int]) -> str:
    """Photo file size for display: '-', 'N B', 'x.x KB' or 'x.x MB'."""
    if not size:
        return "-"
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def format_bytes(size: int) -> str:
    """Storage totals for the system page: up to TB, two decimals, trailing zeros trimmed."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
