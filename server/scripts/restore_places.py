"""
CLI helper to restore the local places document from its backup, or push
the local document to the backup.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from memories.dependencies import get_places_store


logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Places backup/restore")
    parser.add_argument(
        "direction",
        choices=("restore", "backup"),
        help="restore: backup -> local file; backup: local file -> backup",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    store = get_places_store()
    if args.direction == "restore":
        count = store.restore()
        logger.info("Local document now holds %d places", count)
        return 0
    return 0 if store.backup() else 1


if __name__ == "__main__":
    sys.exit(main())
