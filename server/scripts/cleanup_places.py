"""
Drop places that have no image URL from the local document and the backup.

Run it out-of-band, never while the server is appending.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from memories.config import get_settings
from memories.dependencies import get_places_store


logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Remove places without URLs")
    parser.add_argument(
        "--skip-restore",
        action="store_true",
        help="Clean the local file as-is instead of restoring from backup first",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    settings = get_settings()
    store = get_places_store()
    if not args.skip_restore:
        store.restore()
    removed = store.cleanup()
    logger.info("Removed %d places from %s", removed, settings.places_file)
    return 0


if __name__ == "__main__":
    sys.exit(main())
