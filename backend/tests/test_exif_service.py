"""
Pilbum Backend — EXIF Service Tests
=====================================

What we test:
    ✅ Shutter speed formatting and GPS DMS → decimal conversion
    ✅ Capture time parsing (with and without OffsetTime)
    ✅ Full extraction from a synthetic EXIF block (sub-IFD + GPS)
    ✅ IFD0 round-trip through a real JPEG
    ✅ Images without EXIF and undecodable bytes never raise
"""

from datetime import datetime, timedelta, timezone
from fractions import Fraction
from unittest.mock import patch

import pytest
from PIL import ExifTags, Image

from pilbum.services.exif_service import (
    ExifData,
    _altitude,
    _parse_datetime,
    dms_to_decimal,
    extract_exif,
    format_shutter_speed,
)

Base = ExifTags.Base
GPS = ExifTags.GPS


class FakeExif(dict):
    """Stands in for PIL.Image.Exif: IFD0 items plus get_ifd() for sub-IFDs."""

    def __init__(self, ifd0, sub=None, gps=None):
        super().__init__(ifd0)
        self._ifds = {ExifTags.IFD.Exif: sub or {}, ExifTags.IFD.GPSInfo: gps or {}}

    def get_ifd(self, tag):
        return self._ifds.get(tag, {})


class FakeImage:
    def __init__(self, exif, size=(4032, 3024)):
        self._exif = exif
        self.size = size

    def getexif(self):
        return self._exif


class TestFormatShutterSpeed:

    @pytest.mark.parametrize(
        "exposure,expected",
        [
            (0.004, "1/250s"),
            (1 / 60, "1/60s"),
            (0.5, "1/2s"),
            (1.0, "1s"),
            (2.5, "2.5s"),
            (30.0, "30s"),
        ],
    )
    def test_formats(self, exposure, expected):
        assert format_shutter_speed(exposure) == expected


class TestDmsToDecimal:

    def test_north_east(self):
        value = dms_to_decimal((Fraction(39), Fraction(54), Fraction(2646, 100)), "N")
        assert value == pytest.approx(39.9073500, abs=1e-6)

    def test_south_is_negative(self):
        assert dms_to_decimal((33, 52, 4.8), "S") == pytest.approx(-33.868, abs=1e-6)

    def test_west_is_negative(self):
        assert dms_to_decimal((122, 25, 9.6), "W") == pytest.approx(-122.4193333, abs=1e-6)

    def test_bytes_ref(self):
        assert dms_to_decimal((10, 30, 0), b"S") == -10.5

    @pytest.mark.parametrize("dms", [None, (), (1, 2), "39,54,26"])
    def test_malformed_is_none(self, dms):
        assert dms_to_decimal(dms, "N") is None


class TestAltitude:

    def test_above_sea_level(self):
        assert _altitude(Fraction(1234, 10), 0) == 123.4

    def test_below_sea_level_bytes_ref(self):
        assert _altitude(15.0, b"\x01") == -15.0

    def test_missing(self):
        assert _altitude(None, 0) is None


class TestParseDatetime:

    def test_without_offset_is_utc(self):
        parsed = _parse_datetime("2024:03:01 10:20:30")
        assert parsed == datetime(2024, 3, 1, 10, 20, 30, tzinfo=timezone.utc)

    def test_with_offset(self):
        parsed = _parse_datetime("2024:03:01 10:20:30", "+08:00")
        assert parsed.utcoffset() == timedelta(hours=8)
        assert parsed.astimezone(timezone.utc).hour == 2

    def test_negative_offset(self):
        parsed = _parse_datetime("2024:03:01 10:20:30", "-05:30")
        assert parsed.utcoffset() == -timedelta(hours=5, minutes=30)

    def test_garbage_offset_falls_back_to_utc(self):
        parsed = _parse_datetime("2024:03:01 10:20:30", "local")
        assert parsed.tzinfo == timezone.utc

    @pytest.mark.parametrize("value", [None, "", "0000:00:00 00:00:00", "yesterday"])
    def test_invalid(self, value):
        assert _parse_datetime(value) is None


class TestExtractExif:

    def _extract(self, exif, size=(4032, 3024)):
        with patch(
            "pilbum.services.exif_service.open_image",
            return_value=FakeImage(exif, size),
        ):
            return extract_exif(b"ignored")

    def test_full_camera_metadata(self):
        exif = FakeExif(
            {
                Base.Make: "Apple\x00",
                Base.Model: " iPhone 15 Pro ",
                Base.Software: "17.4",
                Base.Orientation: 6,
            },
            sub={
                Base.LensMake: "Apple",
                Base.LensModel: "iPhone 15 Pro back triple camera 6.765mm f/1.78",
                Base.FocalLength: Fraction(6765, 1000),
                Base.FocalLengthIn35mmFilm: 24,
                Base.FNumber: Fraction(178, 100),
                Base.ExposureTime: Fraction(1, 120),
                Base.ISOSpeedRatings: 80,
                Base.ExposureBiasValue: Fraction(0, 1),
                Base.ExposureProgram: 2,
                Base.ExposureMode: 0,
                Base.MeteringMode: 5,
                Base.Flash: 0x10,
                Base.WhiteBalance: 0,
                Base.ColorSpace: 65535,
                Base.DateTimeOriginal: "2024:05:18 14:03:22",
                Base.OffsetTimeOriginal: "+08:00",
                Base.ExifImageWidth: 4032,
                Base.ExifImageHeight: 3024,
            },
            gps={
                GPS.GPSLatitudeRef: "N",
                GPS.GPSLatitude: (Fraction(31), Fraction(14), Fraction(1200, 100)),
                GPS.GPSLongitudeRef: "E",
                GPS.GPSLongitude: (Fraction(121), Fraction(28), Fraction(3600, 100)),
                GPS.GPSAltitudeRef: b"\x00",
                GPS.GPSAltitude: Fraction(45, 1),
            },
        )

        result = self._extract(exif)

        assert result.camera_make == "Apple"
        assert result.camera_model == "iPhone 15 Pro"
        assert result.software == "17.4"
        assert result.orientation == 6
        assert result.lens_make == "Apple"
        assert result.lens_model.startswith("iPhone 15 Pro back")
        assert result.focal_length == 7.0
        assert result.focal_length_35mm == 24
        assert result.aperture == pytest.approx(1.78)
        assert result.exposure_time == pytest.approx(1 / 120)
        assert result.shutter_speed == "1/120s"
        assert result.iso == 80
        assert result.exposure_bias == 0
        assert result.exposure_program == "Normal program"
        assert result.exposure_mode == "Auto exposure"
        assert result.metering_mode == "Pattern"
        assert result.flash == "Flash did not fire, compulsory flash mode"
        assert result.white_balance == "Auto white balance"
        assert result.color_space == "Uncalibrated"
        assert result.taken_at.utcoffset() == timedelta(hours=8)
        assert result.latitude == pytest.approx(31.2366667, abs=1e-6)
        assert result.longitude == pytest.approx(121.4766667, abs=1e-6)
        assert result.altitude == 45
        assert (result.width, result.height) == (4032, 3024)

    def test_lens_model_falls_back_to_lens_make(self):
        result = self._extract(FakeExif({Base.Make: "Sony"}, sub={Base.LensMake: "Sigma"}))
        assert result.lens_model == "Sigma"

    def test_unknown_codes_are_none(self):
        result = self._extract(FakeExif({}, sub={Base.MeteringMode: 42, Base.Flash: 0x7F}))
        assert result.metering_mode is None
        assert result.flash is None

    def test_zero_exposure_time_ignored(self):
        result = self._extract(FakeExif({}, sub={Base.ExposureTime: 0.0}))
        assert result.exposure_time is None
        assert result.shutter_speed is None

    def test_taken_at_falls_back_to_ifd0_datetime(self):
        result = self._extract(FakeExif({Base.DateTime: "2023:12:31 23:59:59"}))
        assert result.taken_at == datetime(2023, 12, 31, 23, 59, 59, tzinfo=timezone.utc)

    def test_no_exif_reports_pixel_size_only(self):
        result = self._extract(FakeExif({}), size=(640, 480))
        assert result == ExifData(width=640, height=480)
        assert all(value is None for value in result.photo_fields().values())

    def test_photo_fields_excludes_dimensions(self):
        fields = ExifData(camera_make="Canon", width=10, height=20).photo_fields()
        assert "width" not in fields
        assert "height" not in fields
        assert fields["camera_make"] == "Canon"

    def test_ifd0_round_trip_through_real_jpeg(self, jpeg_factory):
        exif = Image.Exif()
        exif[Base.Make] = "Canon"
        exif[Base.Model] = "EOS R5"
        exif[Base.Software] = "Firmware 1.8"
        exif[Base.DateTime] = "2022:07:04 09:15:00"

        result = extract_exif(jpeg_factory(320, 240, exif=exif.tobytes()))

        assert result.camera_make == "Canon"
        assert result.camera_model == "EOS R5"
        assert result.software == "Firmware 1.8"
        assert result.taken_at == datetime(2022, 7, 4, 9, 15, tzinfo=timezone.utc)
        assert (result.width, result.height) == (320, 240)

    def test_jpeg_without_exif(self, sample_jpeg):
        result = extract_exif(sample_jpeg)
        assert result.camera_make is None
        assert result.taken_at is None
        assert (result.width, result.height) == (64, 48)

    def test_garbage_bytes_return_empty(self):
        assert extract_exif(b"definitely not an image") == ExifData()
