"""
Seed the category table from a JSON file.

The file holds a list of objects with a ``name`` key. Seeding only runs when
the table is empty unless ``--force`` is given, in which case names that
already exist are skipped.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from stories_backend.cache import CATEGORY_LIST_KEY
from stories_backend.db import DbClient
from stories_backend.dependencies import get_cache_client, get_db_client
from stories_backend.errors import ConflictError
from stories_backend.records import Category

logger = logging.getLogger(__name__)

DEFAULT_SEED_FILE = ROOT / "seeds" / "categories.json"


def load_names(path: Path) -> list[str]:
    with open(path, "r", encoding="utf-8") as f:
        entries = json.load(f)
    names = []
    for entry in entries:
        name = (entry.get("name") or "").strip()
        if name:
            names.append(name)
    return names


def seed_categories(db: DbClient, names: list[str], *, force: bool = False) -> int:
    if db.list_categories() and not force:
        logger.info("Categories already present, skipping seed")
        return 0
    created = 0
    for name in names:
        if db.get_category_by_name(name):
            continue
        try:
            db.create_category(Category(name=name))
        except ConflictError:
            continue
        created += 1
    return created


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed categories")
    parser.add_argument(
        "--file",
        type=Path,
        default=DEFAULT_SEED_FILE,
        help="JSON file with a list of {\"name\": ...} objects",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Seed even when categories already exist",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    names = load_names(args.file)
    created = seed_categories(get_db_client(), names, force=args.force)
    if created:
        get_cache_client().delete(CATEGORY_LIST_KEY)
    logger.info("Seeded %d categories", created)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
