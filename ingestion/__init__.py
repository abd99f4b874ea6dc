"""Ingestion utilities for seeding the device catalog."""

import logging
from dataclasses import dataclass, field
from typing import Dict

logger = logging.getLogger("ingestion")
if not logger.handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@dataclass
class IngestionMetrics:
    """Track how many catalog rows were loaded or skipped per table."""

    rows_read: int = 0
    rows_skipped: int = 0
    loaded: Dict[str, int] = field(default_factory=dict)

    def add_rows(self, count: int) -> None:
        self.rows_read += count
        logger.debug("Added %s CSV rows; total=%s", count, self.rows_read)

    def mark_loaded(self, table: str, count: int = 1) -> None:
        self.loaded[table] = self.loaded.get(table, 0) + count
        logger.debug("Loaded %s rows into %s; total=%s", count, table, self.loaded[table])

    def mark_skipped(self, count: int = 1) -> None:
        self.rows_skipped += count
        logger.debug("Skipped %s rows; total=%s", count, self.rows_skipped)


__all__ = ["IngestionMetrics", "logger"]
