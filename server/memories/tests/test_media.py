import io
import unittest
from datetime import datetime

from PIL import Image, UnidentifiedImageError

from memories import media


def _exif(original=None, modified=None):
    exif = Image.Exif()
    if modified:
        exif[media.TAG_DATETIME] = modified
    if original:
        exif.get_ifd(media.EXIF_IFD)[media.TAG_DATETIME_ORIGINAL] = original
    return exif


def _heif(exif=None) -> bytes:
    img = Image.new("RGB", (16, 16), "blue")
    buf = io.BytesIO()
    if exif is not None:
        img.save(buf, format="HEIF", exif=exif)
    else:
        img.save(buf, format="HEIF")
    return buf.getvalue()


def _jpeg(exif_datetime=None) -> bytes:
    img = Image.new("RGB", (8, 8), "red")
    buf = io.BytesIO()
    if exif_datetime:
        exif = Image.Exif()
        exif[media.TAG_DATETIME] = exif_datetime
        img.save(buf, format="JPEG", exif=exif)
    else:
        img.save(buf, format="JPEG")
    return buf.getvalue()


class CaptureDateTests(unittest.TestCase):
    def test_exif_date_is_reformatted(self):
        content = _jpeg("2023:07:14 10:20:30")

        self.assertEqual(media.extract_capture_date(content), datetime(2023, 7, 14, 10, 20, 30))
        self.assertEqual(media.display_date(content), "14.07.23")

    def test_missing_exif_falls_back_to_today(self):
        today = datetime(2025, 1, 2)

        self.assertEqual(media.display_date(_jpeg(), today=today), "02.01.25")

    def test_unparsable_exif_falls_back_to_today(self):
        content = _jpeg("sometime last summer")

        self.assertIsNone(media.extract_capture_date(content))
        self.assertEqual(media.display_date(content, today=datetime(2025, 3, 4)), "04.03.25")

    def test_not_an_image(self):
        self.assertIsNone(media.extract_capture_date(b"definitely not an image"))

    def test_client_date_wins(self):
        content = _jpeg("2023:07:14 10:20:30")

        self.assertEqual(media.display_date(content, "01.01.20"), "01.01.20")
        self.assertEqual(media.display_date(content, "   "), "14.07.23")

    def test_date_time_original_wins_over_modify_date(self):
        img = Image.new("RGB", (8, 8), "red")
        buf = io.BytesIO()
        img.save(
            buf,
            format="JPEG",
            exif=_exif(original="2021:03:04 10:00:00", modified="2024:01:01 00:00:00"),
        )

        self.assertEqual(media.display_date(buf.getvalue()), "04.03.21")


class HeicConversionTests(unittest.TestCase):
    def test_heif_is_reencoded_as_jpeg_with_exif(self):
        content = _heif(_exif(original="2021:03:04 10:00:00"))

        self.assertEqual(media.display_date(content), "04.03.21")

        converted = media.convert_heic_to_jpeg(content)

        self.assertTrue(converted.startswith(b"\xff\xd8\xff"))
        with Image.open(io.BytesIO(converted)) as img:
            self.assertEqual(img.format, "JPEG")
            self.assertEqual(img.size, (16, 16))
        self.assertEqual(media.display_date(converted), "04.03.21")

    def test_heif_without_exif(self):
        converted = media.convert_heic_to_jpeg(_heif())

        self.assertTrue(converted.startswith(b"\xff\xd8\xff"))
        self.assertIsNone(media.extract_capture_date(converted))

    def test_garbage_is_rejected(self):
        with self.assertRaises(UnidentifiedImageError):
            media.convert_heic_to_jpeg(b"not a heic file")


class ContentTypeTests(unittest.TestCase):
    def test_extension_fallback(self):
        self.assertEqual(media.normalize_content_type(None, "IMG_1.HEIC"), "image/heic")
        self.assertEqual(
            media.normalize_content_type("application/octet-stream", "a.jpg"),
            "image/jpeg",
        )
        self.assertEqual(media.normalize_content_type("image/PNG; q=1", "a.bin"), "image/png")

    def test_allow_list(self):
        self.assertTrue(media.is_supported("image/heif"))
        self.assertFalse(media.is_supported("application/pdf"))

    def test_safe_filename(self):
        self.assertEqual(media.safe_filename("../../my photo (1).jpg"), "my_photo_1_.jpg")
        self.assertEqual(media.safe_filename(""), "photo")


if __name__ == "__main__":
    unittest.main()
