# services/views/history_view.py
import csv
import io
import json
import logging
from pathlib import Path
from typing import Optional, Union

from core.models import ImageRecord
from shared.utils.timestamps import format_timestamp, utcnow
from .record_cache import RecordViewCache

logger = logging.getLogger(__name__)

CSV_HEADER = ['id', 'filename', 'createdAt', 'mimeType', 'size', 'objectsCount', 'avgConfidence', 'detectionsJSON']

EXPORT_PREFIX = 'detection_history'


def is_export_artifact(record: ImageRecord) -> bool:
    """CSV exports stored next to images are not part of the history"""
    mime = record.mime_type.lower()
    names = (record.filename.lower(), record.original_name.lower())
    if 'csv' in mime:
        return True
    return any(name.endswith('.csv') or name.startswith(EXPORT_PREFIX) for name in names)


class HistoryView(RecordViewCache):
    """Detection history, newest first"""

    name = "history"

    def accepts(self, record: ImageRecord) -> bool:
        return not is_export_artifact(record)

    def to_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator='\n')
        writer.writerow(CSV_HEADER)

        for record in self.snapshot():
            writer.writerow([
                record.id or '',
                record.display_name,
                format_timestamp(record.created_at) or '',
                record.mime_type,
                record.size_bytes,
                record.detection_count,
                round((record.avg_confidence or 0) * 100),
                json.dumps([d.to_dict() for d in record.detections]),
            ])

        return buffer.getvalue()

    def export_csv(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the history as CSV; default name detection_history_<timestamp>.csv"""
        if path is None:
            stamp = utcnow().strftime('%Y-%m-%dT%H-%M-%S')
            path = Path(f"{EXPORT_PREFIX}_{stamp}.csv")
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_csv(), encoding='utf-8')

        logger.info(f"💾 Exported {len(self)} history records to {path}")
        return path
