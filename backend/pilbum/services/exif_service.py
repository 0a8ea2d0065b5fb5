"""
Pilbum Backend — EXIF Extraction Service
==========================================

What:  Reads camera, exposure, capture-time and GPS metadata from an upload.
How:   Pillow's EXIF reader (HEIC through pillow-heif). Numeric enum codes
       are remapped to display strings, GPS degrees/minutes/seconds become
       signed decimal degrees, exposure time becomes a "1/250s" string.
Who:   PhotoService (upload and recovery).
When:  Before image processing: re-encoding the JPEG renditions drops EXIF.

extract_exif() never raises. An image without EXIF, or bytes Pillow cannot
read, produce an empty ExifData and a log line.
"""

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from PIL import ExifTags

from pilbum.services.image_service import open_image

logger = logging.getLogger(__name__)

Base = ExifTags.Base
GPS = ExifTags.GPS

# ── Code → string tables (EXIF 2.32) ──────────────────────────────────────
EXPOSURE_PROGRAMS = {
    0: "Not defined",
    1: "Manual",
    2: "Normal program",
    3: "Aperture priority",
    4: "Shutter priority",
    5: "Creative program",
    6: "Action program",
    7: "Portrait mode",
    8: "Landscape mode",
}

EXPOSURE_MODES = {
    0: "Auto exposure",
    1: "Manual exposure",
    2: "Auto bracket",
}

METERING_MODES = {
    0: "Unknown",
    1: "Average",
    2: "Center weighted average",
    3: "Spot",
    4: "Multi-spot",
    5: "Pattern",
    6: "Partial",
    255: "Other",
}

WHITE_BALANCE = {
    0: "Auto white balance",
    1: "Manual white balance",
}

COLOR_SPACES = {
    1: "sRGB",
    2: "Adobe RGB",
    65535: "Uncalibrated",
}

FLASH_MODES = {
    0x00: "Flash did not fire",
    0x01: "Flash fired",
    0x05: "Strobe return light not detected",
    0x07: "Strobe return light detected",
    0x08: "On, did not fire",
    0x09: "Flash fired, compulsory flash mode",
    0x0D: "Flash fired, compulsory flash mode, return light not detected",
    0x0F: "Flash fired, compulsory flash mode, return light detected",
    0x10: "Flash did not fire, compulsory flash mode",
    0x14: "Off, did not fire, return not detected",
    0x18: "Flash did not fire, auto mode",
    0x19: "Flash fired, auto mode",
    0x1D: "Flash fired, auto mode, return light not detected",
    0x1F: "Flash fired, auto mode, return light detected",
    0x20: "No flash function",
    0x30: "Off, no flash function",
    0x41: "Flash fired, red-eye reduction mode",
    0x45: "Flash fired, red-eye reduction mode, return light not detected",
    0x47: "Flash fired, red-eye reduction mode, return light detected",
    0x49: "Flash fired, compulsory flash mode, red-eye reduction mode",
    0x4D: "Flash fired, compulsory flash mode, red-eye reduction mode, return light not detected",
    0x4F: "Flash fired, compulsory flash mode, red-eye reduction mode, return light detected",
    0x50: "Off, red-eye reduction",
    0x58: "Auto, did not fire, red-eye reduction",
    0x59: "Flash fired, auto mode, red-eye reduction mode",
    0x5D: "Flash fired, auto mode, return light not detected, red-eye reduction mode",
    0x5F: "Flash fired, auto mode, return light detected, red-eye reduction mode",
}

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


@dataclass
class ExifData:
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    lens_model: Optional[str] = None
    lens_make: Optional[str] = None
    software: Optional[str] = None
    focal_length: Optional[float] = None
    focal_length_35mm: Optional[float] = None
    aperture: Optional[float] = None
    shutter_speed: Optional[str] = None
    exposure_time: Optional[float] = None
    iso: Optional[int] = None
    exposure_bias: Optional[float] = None
    exposure_program: Optional[str] = None
    exposure_mode: Optional[str] = None
    metering_mode: Optional[str] = None
    flash: Optional[str] = None
    white_balance: Optional[str] = None
    color_space: Optional[str] = None
    orientation: Optional[int] = None
    taken_at: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def photo_fields(self) -> Dict[str, Any]:
        """Column values for the photos table (width/height come from the renditions)."""
        fields = asdict(self)
        fields.pop("width")
        fields.pop("height")
        return fields


# ── Value helpers ─────────────────────────────────────────────────────────

def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    cleaned = str(value).replace("\x00", "").strip()
    return cleaned or None


def _number(value: Any) -> Optional[float]:
    """IFDRational/int/tuple → float. Zero denominators and garbage become None."""
    if isinstance(value, (tuple, list)):
        if not value:
            return None
        value = value[0]
    try:
        number = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    return number if math.isfinite(number) else None


def _integer(value: Any) -> Optional[int]:
    number = _number(value)
    return int(number) if number is not None else None


def _code(table: Dict[int, str], value: Any) -> Optional[str]:
    code = _integer(value)
    if code is None:
        return None
    return table.get(code)


def format_shutter_speed(exposure_time: float) -> str:
    """1.0 → '1s', 2.5 → '2.5s', 0.004 → '1/250s'."""
    if exposure_time >= 1:
        return f"{exposure_time:g}s"
    return f"1/{round(1 / exposure_time)}s"


def _parse_offset(value: Any) -> Optional[timezone]:
    """EXIF OffsetTime* values look like '+08:00'."""
    text = _text(value)
    if not text or len(text) != 6 or text[0] not in "+-" or text[3] != ":":
        return None
    try:
        hours, minutes = int(text[1:3]), int(text[4:6])
    except ValueError:
        return None
    delta = timedelta(hours=hours, minutes=minutes)
    return timezone(-delta if text[0] == "-" else delta)


def _parse_datetime(value: Any, offset: Any = None) -> Optional[datetime]:
    """
    Parse 'YYYY:MM:DD HH:MM:SS'. EXIF has no zone unless an OffsetTime tag
    is present; without one the wall-clock time is stored as UTC.
    """
    text = _text(value)
    if not text:
        return None
    try:
        parsed = datetime.strptime(text[:19], EXIF_DATETIME_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=_parse_offset(offset) or timezone.utc)


def dms_to_decimal(dms: Any, ref: Any) -> Optional[float]:
    """(degrees, minutes, seconds) + 'N'/'S'/'E'/'W' → signed decimal degrees."""
    if not isinstance(dms, (tuple, list)) or len(dms) != 3:
        return None
    parts = [_number(p) for p in dms]
    if any(p is None for p in parts):
        return None
    degrees, minutes, seconds = parts
    decimal = degrees + minutes / 60 + seconds / 3600
    if (_text(ref) or "").upper() in ("S", "W"):
        decimal = -decimal
    return round(decimal, 7)


def _altitude(value: Any, ref: Any) -> Optional[float]:
    altitude = _number(value)
    if altitude is None:
        return None
    if isinstance(ref, bytes):
        ref = ref[0] if ref else 0
    if _integer(ref) == 1:
        altitude = -altitude
    return altitude


# ── Extraction ────────────────────────────────────────────────────────────

def extract_exif(data: bytes) -> ExifData:
    """Read EXIF metadata from image bytes. Returns an empty ExifData on any failure."""
    try:
        image = open_image(data)
        exif = image.getexif()
        ifd0 = dict(exif)
        sub = dict(exif.get_ifd(ExifTags.IFD.Exif))
        gps = dict(exif.get_ifd(ExifTags.IFD.GPSInfo))
        pixel_width, pixel_height = image.size
    except Exception as e:
        logger.warning("EXIF extraction failed: %s", e)
        return ExifData()

    if not ifd0 and not sub and not gps:
        return ExifData(width=pixel_width, height=pixel_height)

    result = ExifData()

    result.camera_make = _text(ifd0.get(Base.Make))
    result.camera_model = _text(ifd0.get(Base.Model))
    result.software = _text(ifd0.get(Base.Software))
    result.lens_make = _text(sub.get(Base.LensMake))
    result.lens_model = _text(sub.get(Base.LensModel)) or result.lens_make

    focal_length = _number(sub.get(Base.FocalLength))
    result.focal_length = float(round(focal_length)) if focal_length is not None else None
    result.focal_length_35mm = _number(sub.get(Base.FocalLengthIn35mmFilm))
    result.aperture = _number(sub.get(Base.FNumber))

    exposure_time = _number(sub.get(Base.ExposureTime))
    if exposure_time is not None and exposure_time > 0:
        result.exposure_time = exposure_time
        result.shutter_speed = format_shutter_speed(exposure_time)

    iso = sub.get(Base.ISOSpeedRatings)
    result.iso = _integer(iso)
    result.exposure_bias = _number(sub.get(Base.ExposureBiasValue))

    result.exposure_program = _code(EXPOSURE_PROGRAMS, sub.get(Base.ExposureProgram))
    result.exposure_mode = _code(EXPOSURE_MODES, sub.get(Base.ExposureMode))
    result.metering_mode = _code(METERING_MODES, sub.get(Base.MeteringMode))
    result.flash = _code(FLASH_MODES, sub.get(Base.Flash))
    result.white_balance = _code(WHITE_BALANCE, sub.get(Base.WhiteBalance))
    result.color_space = _code(COLOR_SPACES, sub.get(Base.ColorSpace))
    result.orientation = _integer(ifd0.get(Base.Orientation))

    result.taken_at = (
        _parse_datetime(sub.get(Base.DateTimeOriginal), sub.get(Base.OffsetTimeOriginal))
        or _parse_datetime(sub.get(Base.DateTimeDigitized), sub.get(Base.OffsetTimeDigitized))
        or _parse_datetime(ifd0.get(Base.DateTime), sub.get(Base.OffsetTime))
    )

    if gps:
        result.latitude = dms_to_decimal(gps.get(GPS.GPSLatitude), gps.get(GPS.GPSLatitudeRef))
        result.longitude = dms_to_decimal(gps.get(GPS.GPSLongitude), gps.get(GPS.GPSLongitudeRef))
        result.altitude = _altitude(gps.get(GPS.GPSAltitude), gps.get(GPS.GPSAltitudeRef))

    result.width = _integer(sub.get(Base.ExifImageWidth)) or pixel_width
    result.height = _integer(sub.get(Base.ExifImageHeight)) or pixel_height

    return result
