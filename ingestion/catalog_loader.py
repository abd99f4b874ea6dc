"""Load brand, model and error code CSVs into a local device store."""

import csv
import json
from pathlib import Path
from typing import Dict, List

from backend.db.local import LocalStore
from backend.db.store import BRANDS_TABLE, ERROR_CODES_TABLE, MODELS_TABLE

from . import IngestionMetrics, logger

BRANDS_CSV = "brands.csv"
MODELS_CSV = "models.csv"
ERROR_CODES_CSV = "error_codes.csv"


def normalize_header(header: str) -> str:
    """Normalize a CSV header by lower-casing and replacing whitespace with underscores."""

    return "_".join(header.strip().lower().split())


def load_csv_rows(
    csv_path: Path,
    metrics: IngestionMetrics | None = None,
) -> List[Dict[str, str]]:
    """Load a CSV file with normalized headers and stripped values.

    Empty cells become None so optional columns stay unset in the store.

    Returns:
        The normalized rows keyed by normalized header.
    """

    rows: List[Dict[str, str]] = []
    logger.info("Loading CSV file: %s", csv_path)
    with csv_path.open(newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        for row in reader:
            normalized = {}
            for key, value in row.items():
                if key is None:
                    continue
                value = value.strip() if isinstance(value, str) else value
                normalized[normalize_header(key)] = value or None
            rows.append(normalized)

    logger.info("Processed %s rows from %s", len(rows), csv_path)
    if metrics:
        metrics.add_rows(len(rows))
    return rows


def _parse_specs(raw: str | None):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        # Plain text specs are kept as a string value.
        return raw


async def seed_catalog(
    store: LocalStore,
    source_dir: Path,
    metrics: IngestionMetrics | None = None,
) -> IngestionMetrics:
    """Insert brands, then models (matched to brands by name), then error codes.

    Any of the three files may be missing. Models naming an unknown brand and
    rows without a name or code are skipped.
    """

    metrics = metrics or IngestionMetrics()
    brand_ids: Dict[str, str] = {
        row["name"].lower(): row["id"] for row in await store.select(BRANDS_TABLE)
    }

    brands_path = source_dir / BRANDS_CSV
    if brands_path.exists():
        rows = load_csv_rows(brands_path, metrics)
        for row in rows:
            name = row.get("name")
            if not name:
                metrics.mark_skipped()
                continue
            if name.lower() in brand_ids:
                logger.info("Brand %s already present, skipping", name)
                metrics.mark_skipped()
                continue
            stored = await store.insert(
                BRANDS_TABLE,
                {
                    "name": name,
                    "description": row.get("description"),
                    "logo_url": row.get("logo_url"),
                },
            )
            brand_ids[name.lower()] = stored["id"]
            metrics.mark_loaded(BRANDS_TABLE)

    models_path = source_dir / MODELS_CSV
    if models_path.exists():
        rows = load_csv_rows(models_path, metrics)
        for row in rows:
            brand_name = row.get("brand") or row.get("brand_name")
            brand_id = brand_ids.get(brand_name.lower()) if brand_name else None
            if brand_id is None or not row.get("name"):
                logger.warning("Skipping model %r: unknown brand %r", row.get("name"), brand_name)
                metrics.mark_skipped()
                continue
            await store.insert(
                MODELS_TABLE,
                {
                    "brand_id": brand_id,
                    "name": row["name"],
                    "description": row.get("description"),
                    "specs": _parse_specs(row.get("specs")),
                },
            )
            metrics.mark_loaded(MODELS_TABLE)

    codes_path = source_dir / ERROR_CODES_CSV
    if codes_path.exists():
        rows = load_csv_rows(codes_path, metrics)
        for row in rows:
            if not row.get("code"):
                metrics.mark_skipped()
                continue
            await store.insert(
                ERROR_CODES_TABLE,
                {
                    "code": row["code"],
                    "meaning": row.get("meaning"),
                    "description": row.get("description"),
                },
            )
            metrics.mark_loaded(ERROR_CODES_TABLE)

    logger.info(
        "Seeded catalog from %s: loaded=%s skipped=%s",
        source_dir,
        metrics.loaded,
        metrics.rows_skipped,
    )
    return metrics
