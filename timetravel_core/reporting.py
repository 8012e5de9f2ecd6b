"""
CSV reporting sink.

One analysis run produces one row.  Rows are appended to a CSV file; the
header is written exactly once, when the file is first created.

Usage:
    sink = CsvSink("output.csv")
    sink.append(row)          # row: MinActiveStakeRow / ElectionAnalysisRow
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger("timetravel.reporting")


class CsvSink:
    """Append-only CSV file of analysis rows."""

    def __init__(self, path: str):
        self.path = Path(path)

    def append(self, row: Any) -> None:
        """Append *row*; writes the header first if the file does not exist yet."""
        write_header = not self.path.exists()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=row.header())
            if write_header:
                writer.writeheader()
            writer.writerow(row.to_record())
        logger.info("CSV entry stored in %s", self.path)

    def read_rows(self) -> list[dict[str, str]]:
        if not self.path.exists():
            return []
        with open(self.path, newline="", encoding="utf-8") as f:
            return list(csv.DictReader(f))
