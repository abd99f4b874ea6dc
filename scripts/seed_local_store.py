#!/usr/bin/env python3
"""
Seed a local device store
=========================
Loads brands.csv, models.csv and error_codes.csv from a directory into a
DuckDB file the API can serve with DEVICE_DIRECTORY_DB_PATH.

Usage:
    python scripts/seed_local_store.py --db data/devices.duckdb --source data/catalog
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.db.local import LocalStore
from ingestion.catalog_loader import seed_catalog

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed a local DuckDB device store from CSV files")
    parser.add_argument("--db", type=Path, default=Path("data/devices.duckdb"), help="DuckDB file to write")
    parser.add_argument("--source", type=Path, default=Path("data/catalog"), help="Directory holding the CSV files")
    return parser.parse_args(argv)


async def run(db_path: Path, source_dir: Path) -> int:
    store = LocalStore(db_path)
    try:
        metrics = await seed_catalog(store, source_dir)
    finally:
        await store.close()

    for table, count in sorted(metrics.loaded.items()):
        logger.info("%s: %s rows loaded", table, count)
    if metrics.rows_skipped:
        logger.warning("%s rows skipped", metrics.rows_skipped)
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    if not args.source.is_dir():
        logger.error("Source directory not found: %s", args.source)
        return 1
    return asyncio.run(run(args.db, args.source))


if __name__ == "__main__":
    sys.exit(main())
