"""
Places document: photo-memory records kept in a local JSON file and mirrored
to a backup object in storage.

The backup object is the source of truth at process start (``restore``);
during the process lifetime the local file is read, modified and written back
on every append and then replicated to the backup key.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from memories.storage import ObjectNotFoundError, ObjectStore

logger = logging.getLogger(__name__)

BACKUP_KEY = "backups/places.json"
COORDS_TOLERANCE = 1e-4
DEFAULT_PLACE_TITLE = "Новое место"


@dataclass
class PlaceRecord:
    id: str
    orig_url: str
    filename: str
    coords: Optional[list[float]] = None
    thumb_url: Optional[str] = None
    place_title: str = DEFAULT_PLACE_TITLE
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    exif_date: Optional[str] = None
    caption: Optional[str] = None
    # Per-photo items ({"url", "caption"}) for places holding several photos.
    photos: Optional[list[dict]] = None

    def __post_init__(self):
        if self.thumb_url is None:
            self.thumb_url = self.orig_url

    @classmethod
    def create(
        cls,
        url: str,
        filename: str,
        coords: Optional[Sequence[float]] = None,
        place_title: Optional[str] = None,
        exif_date: Optional[str] = None,
        caption: Optional[str] = None,
        photos: Optional[Sequence[dict]] = None,
    ) -> "PlaceRecord":
        return cls(
            id=str(int(time.time() * 1000)),
            orig_url=url,
            filename=filename,
            coords=list(coords) if coords else None,
            place_title=place_title or DEFAULT_PLACE_TITLE,
            exif_date=exif_date,
            caption=caption,
            photos=[dict(photo) for photo in photos] if photos else None,
        )

    def as_dict(self) -> dict:
        payload = {
            "id": self.id,
            "coords": self.coords,
            "thumbUrl": self.thumb_url,
            "origUrl": self.orig_url,
            "placeTitle": self.place_title,
            "timestamp": self.timestamp,
            "filename": self.filename,
            "exifDate": self.exif_date,
        }
        if self.caption is not None:
            payload["caption"] = self.caption
        if self.photos is not None:
            payload["photos"] = [dict(photo) for photo in self.photos]
        return payload


def record_coords(record: dict) -> Optional[tuple[float, float]]:
    """Return ``(lat, lon)`` for a stored record, accepting list or dict shapes."""
    coords = record.get("coords")
    try:
        if isinstance(coords, dict):
            lat = coords.get("latitude", coords.get("lat"))
            lon = coords.get("longitude", coords.get("lng", coords.get("lon")))
            return float(lat), float(lon)
        if isinstance(coords, (list, tuple)) and len(coords) == 2:
            return float(coords[0]), float(coords[1])
    except (TypeError, ValueError):
        return None
    return None


def coords_match(
    a: tuple[float, float],
    b: tuple[float, float],
    tolerance: float = COORDS_TOLERANCE,
) -> bool:
    return abs(a[0] - b[0]) < tolerance and abs(a[1] - b[1]) < tolerance


def has_url(record: dict) -> bool:
    return bool(record.get("origUrl") or record.get("thumbUrl"))


class PlacesStore:
    """Read-modify-write-replicate store for the places document."""

    def __init__(self, storage: ObjectStore, path: str, backup_key: str = BACKUP_KEY):
        self.storage = storage
        self.path = path
        self.backup_key = backup_key

    def _read_local(self) -> list[dict]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            raw = f.read()
        if not raw.strip():
            return []
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"{self.path} does not hold a JSON array")
        return data

    def _write_local(self, places: list[dict]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        body = json.dumps(places, ensure_ascii=False, indent=2, allow_nan=False)
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(body)

    def load(self) -> list[dict]:
        """Return the local document; any failure yields an empty list."""
        try:
            return self._read_local()
        except Exception:
            logger.exception("Failed to read places document %s", self.path)
            return []

    def count(self) -> int:
        return len(self.load())

    def _fetch_backup(self) -> list[dict]:
        raw = self.storage.get_object(self.backup_key)
        data = json.loads(raw.decode("utf-8")) if raw else []
        if not isinstance(data, list):
            raise ValueError(f"Backup {self.backup_key} does not hold a JSON array")
        return data

    def _upload_backup(self, places: list[dict]) -> None:
        body = json.dumps(places, ensure_ascii=False, indent=2, allow_nan=False).encode("utf-8")
        self.storage.put_object(self.backup_key, body, "application/json")

    def backup(self) -> bool:
        """Upload the local document to the backup key."""
        places = self.load()
        try:
            self._upload_backup(places)
        except Exception:
            logger.exception("Failed to back up places document")
            return False
        logger.info("Backed up %d places to %s", len(places), self.backup_key)
        return True

    def restore(self) -> int:
        """
        Replace the local document with the backup object.

        A missing backup means no data exists yet: the stale local file is
        discarded and an empty document is written in its place.
        """
        try:
            places = self._fetch_backup()
        except ObjectNotFoundError:
            logger.info("No places backup at %s, starting empty", self.backup_key)
            try:
                if os.path.exists(self.path):
                    os.remove(self.path)
                self._write_local([])
            except (OSError, ValueError):
                logger.exception("Failed to reset local places document")
            return 0
        except Exception:
            logger.exception("Failed to restore places backup")
            return self.count()

        try:
            self._write_local(places)
        except (OSError, ValueError):
            logger.exception("Failed to write restored places document")
            return 0
        logger.info("Restored %d places from backup", len(places))
        return len(places)

    def append(self, record: PlaceRecord | dict) -> dict:
        item = record.as_dict() if isinstance(record, PlaceRecord) else dict(record)
        places = self.load()
        item["id"] = _unique_id(item.get("id"), {str(p.get("id")) for p in places})
        places.append(item)
        try:
            self._write_local(places)
        except (OSError, ValueError):
            logger.exception("Failed to write places document %s", self.path)
        try:
            self._upload_backup(places)
        except Exception:
            logger.exception("Failed to back up places after append")
        logger.info("Appended place %s (%d total)", item.get("id"), len(places))
        return item

    def update_caption(
        self,
        coords: Sequence[float],
        caption: str,
        photo_index: Optional[int] = None,
    ) -> Optional[dict]:
        """
        Set the caption of the first record at ``coords`` in the backup.

        Returns the updated record, or None when no record matched. Storage
        failures other than a missing backup propagate to the caller.
        """
        target = (float(coords[0]), float(coords[1]))
        try:
            places = self._fetch_backup()
        except ObjectNotFoundError:
            return None
        except Exception:
            logger.exception("Failed to fetch places backup for caption update")
            raise

        for place in places:
            place_coords = record_coords(place)
            if place_coords is None or not coords_match(place_coords, target):
                continue
            _apply_caption(place, caption, photo_index)
            self._upload_backup(places)
            try:
                self._write_local(places)
            except (OSError, ValueError):
                logger.exception("Failed to refresh local places after caption update")
            return place
        return None

    def cleanup(self) -> int:
        """Drop records without any image URL. Returns the number removed."""
        places = self.load()
        kept = [place for place in places if has_url(place)]
        removed = len(places) - len(kept)
        if removed:
            self._write_local(kept)
            self._upload_backup(kept)
        logger.info("Cleanup removed %d of %d places", removed, len(places))
        return removed


def _unique_id(candidate: Any, taken: set[str]) -> str:
    """Ids are creation timestamps; bump on a same-millisecond collision."""
    value = str(candidate) if candidate is not None else str(int(time.time() * 1000))
    while value in taken:
        value = str(int(value) + 1) if value.isdigit() else f"{value}-1"
    return value


def _apply_caption(place: dict, caption: str, photo_index: Optional[int]) -> None:
    photos: Any = place.get("photos")
    if (
        photo_index is not None
        and isinstance(photos, list)
        and 0 <= photo_index < len(photos)
        and isinstance(photos[photo_index], dict)
    ):
        photos[photo_index]["caption"] = caption
    else:
        place["caption"] = caption
