"""
Photo upload pipeline: validate, store the image, derive a display date and
append a record to the places document.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import math
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Optional

from memories import media
from memories.errors import BadRequestError, UpstreamError
from memories.places import PlaceRecord, PlacesStore
from memories.storage import ObjectStore

logger = logging.getLogger(__name__)

MEMORY_PREFIX = "memories/"
DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w/+.\-]+);base64,(?P<data>.*)$", re.S)


@dataclass
class UploadResult:
    url: str
    record: dict


def parse_gps(value: Any) -> Optional[list[float]]:
    """
    Parse the ``gps`` form field into ``[lat, lon]``.

    Accepts a JSON string or a mapping with latitude/longitude keys.
    Anything unparsable yields None.
    """
    if value is None or value == "":
        return None
    data = value
    if isinstance(value, str):
        try:
            data = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed gps field: %r", value)
            return None
    try:
        if isinstance(data, dict):
            lat = data.get("latitude", data.get("lat"))
            lon = data.get("longitude", data.get("lng", data.get("lon")))
        elif isinstance(data, (list, tuple)) and len(data) == 2:
            lat, lon = data
        else:
            return None
        if lat is None or lon is None:
            return None
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError):
        logger.warning("Ignoring gps field with non-numeric values: %r", value)
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        logger.warning("Ignoring gps field with non-finite values: %r", value)
        return None
    if abs(lat) > 90 or abs(lon) > 180:
        logger.warning("Ignoring gps field out of range: %r", value)
        return None
    return [lat, lon]


def decode_base64_image(image_base64: str, filename: str) -> tuple[bytes, str]:
    if not image_base64:
        raise BadRequestError("Missing required fields: imageBase64")
    payload = image_base64.strip()
    content_type = None
    match = DATA_URL_PATTERN.match(payload)
    if match:
        content_type = match.group("mime")
        payload = match.group("data")
    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise BadRequestError("imageBase64 is not valid base64") from exc
    return content, media.normalize_content_type(content_type, filename)


class UploadService:
    def __init__(self, storage: ObjectStore, places: PlacesStore, convert_heic: bool = True):
        self.storage = storage
        self.places = places
        self.convert_heic = convert_heic

    def upload(
        self,
        content: Optional[bytes],
        content_type: Optional[str],
        filename: Optional[str],
        gps: Any = None,
        place_title: Optional[str] = None,
        caption: Optional[str] = None,
        exif_date: Optional[str] = None,
    ) -> UploadResult:
        if not content:
            raise BadRequestError("No file uploaded")

        filename = filename or "photo.jpg"
        content_type = media.normalize_content_type(content_type, filename)
        if not media.is_supported(content_type):
            raise BadRequestError(f"Unsupported file type: {content_type}")

        # Read EXIF before any re-encoding touches the payload.
        date_label = media.display_date(content, exif_date)

        if self.convert_heic and media.is_heic(content_type):
            try:
                content = media.convert_heic_to_jpeg(content)
            except Exception as exc:
                raise BadRequestError(f"Could not convert HEIC image: {exc}") from exc
            content_type = "image/jpeg"
            filename = os.path.splitext(filename)[0] + ".jpg"

        display_name = f"{int(time.time() * 1000)}-{media.safe_filename(filename)}"
        key = f"{MEMORY_PREFIX}{display_name}"
        try:
            url = self.storage.put_object(key, content, content_type, public=True)
        except Exception as exc:
            logger.exception("Failed to store image %s", key)
            raise UpstreamError("Failed to upload image to storage", str(exc)) from exc
        logger.info("Stored image %s (%d bytes)", key, len(content))

        record = PlaceRecord.create(
            url=url,
            filename=display_name,
            coords=parse_gps(gps),
            place_title=place_title,
            exif_date=date_label,
            caption=caption or None,
        )
        stored = self.places.append(record)
        return UploadResult(url=url, record=stored)

    def upload_base64(self, image_base64: str, filename: Optional[str]) -> UploadResult:
        filename = filename or "photo.jpg"
        content, content_type = decode_base64_image(image_base64, filename)
        return self.upload(content, content_type, filename)
