"""
Image helpers: supported formats, HEIC re-encoding and EXIF capture dates.
"""

from __future__ import annotations

import io
import logging
import os
import re
from datetime import datetime
from typing import Optional

from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

register_heif_opener()

logger = logging.getLogger(__name__)

SUPPORTED_CONTENT_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/heic",
    "image/heif",
}
HEIC_CONTENT_TYPES = {"image/heic", "image/heif"}

EXTENSION_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}

EXIF_IFD = 0x8769
TAG_DATETIME = 306
TAG_DATETIME_ORIGINAL = 36867
EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"
DISPLAY_DATE_FORMAT = "%d.%m.%y"


def normalize_content_type(content_type: Optional[str], filename: str = "") -> str:
    value = (content_type or "").split(";")[0].strip().lower()
    if value and value != "application/octet-stream":
        return value
    ext = os.path.splitext(filename or "")[1].lower()
    return EXTENSION_CONTENT_TYPES.get(ext, value or "application/octet-stream")


def is_supported(content_type: str) -> bool:
    return content_type in SUPPORTED_CONTENT_TYPES


def is_heic(content_type: str) -> bool:
    return content_type in HEIC_CONTENT_TYPES


def safe_filename(filename: str) -> str:
    base = os.path.basename(filename or "") or "photo"
    cleaned = re.sub(r"[^\w.\-]+", "_", base).strip("._")
    return cleaned or "photo"


def convert_heic_to_jpeg(content: bytes, quality: int = 90) -> bytes:
    """Re-encode a HEIC/HEIF payload as JPEG, keeping its EXIF block."""
    with Image.open(io.BytesIO(content)) as img:
        exif = img.info.get("exif")
        rgb = img.convert("RGB")
        out = io.BytesIO()
        if exif:
            rgb.save(out, format="JPEG", quality=quality, exif=exif)
        else:
            rgb.save(out, format="JPEG", quality=quality)
    return out.getvalue()


def extract_capture_date(content: bytes) -> Optional[datetime]:
    """Return the EXIF original-capture timestamp, or None."""
    try:
        with Image.open(io.BytesIO(content)) as img:
            exif = img.getexif()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.info("No readable EXIF block: %s", exc)
        return None

    raw = exif.get_ifd(EXIF_IFD).get(TAG_DATETIME_ORIGINAL) or exif.get(TAG_DATETIME)
    if not raw:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("ascii", errors="ignore")
    try:
        return datetime.strptime(str(raw).strip("\x00 "), EXIF_DATETIME_FORMAT)
    except ValueError:
        logger.info("Unparsable EXIF date %r", raw)
        return None


def display_date(
    content: bytes,
    client_date: Optional[str] = None,
    today: Optional[datetime] = None,
) -> str:
    """
    Pick the date shown for a memory, as ``DD.MM.YY``.

    A client-supplied date wins; otherwise the EXIF capture date, otherwise
    today.
    """
    if client_date and client_date.strip():
        return client_date.strip()
    captured = extract_capture_date(content)
    if captured is None:
        captured = today or datetime.now()
    return captured.strftime(DISPLAY_DATE_FORMAT)
