"""Emotion history export functionality."""

import csv
import json
from datetime import datetime
from pathlib import Path

from .store import RecordStore

CSV_FIELDS = [
    "id",
    "createdAt",
    "updatedAt",
    "emotion",
    "intensity",
    "message",
    "sessionId",
    "source",
    "messageId",
]


class HistoryExporter:
    """Export emotion records to JSON or CSV."""

    def __init__(self, store: RecordStore):
        self.store = store

    def _get_records(self, include_deleted: bool) -> list[dict]:
        records = self.store.all() if include_deleted else self.store.visible()
        return [r.to_dict() for r in records]

    def export_json(self, output_path: Path, include_deleted: bool = False) -> int:
        """Export records to JSON.

        Args:
            output_path: Output file path
            include_deleted: Also export tombstoned records

        Returns:
            Number of records exported
        """
        records = self._get_records(include_deleted)

        export_data = {
            "exported_at": datetime.now().isoformat(),
            "count": len(records),
            "records": records,
        }

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w") as f:
            json.dump(export_data, f, indent=2, default=str)

        return len(records)

    def export_csv(self, output_path: Path, include_deleted: bool = False) -> int:
        """Export records to CSV with intensity rounded to 3 decimals.

        Returns:
            Number of records exported
        """
        records = self._get_records(include_deleted)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_FIELDS, extrasaction="ignore")
            writer.writeheader()
            for record in records:
                row = {k: record.get(k, "") for k in CSV_FIELDS}
                row["intensity"] = f"{record['intensity']:.3f}"
                writer.writerow(row)

        return len(records)
