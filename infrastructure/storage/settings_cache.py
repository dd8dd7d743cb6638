import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union


class LocalSettingsCache:
    """Last saved settings payload kept as a JSON file on local disk"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = logging.getLogger(self.__class__.__name__)

        # Monitoring
        self.reads_count = 0
        self.writes_count = 0
        self.errors_count = 0
        self.last_write_time: Optional[float] = None

    def load(self) -> Optional[Dict[str, Any]]:
        """Cached payload, or None when missing or unreadable"""
        if not self.path.exists():
            return None

        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            self.errors_count += 1
            self.logger.warning(f"⚠️ Ignoring unreadable settings cache {self.path}: {e}")
            return None

        self.reads_count += 1
        if not isinstance(data, dict):
            self.logger.warning(f"⚠️ Settings cache {self.path} does not hold an object")
            return None
        return data

    def save(self, payload: Dict[str, Any]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
            tmp_path.write_text(json.dumps(payload, indent=2, default=str), encoding='utf-8')
            tmp_path.replace(self.path)
        except OSError as e:
            self.errors_count += 1
            self.logger.error(f"❌ Could not write settings cache {self.path}: {e}")
            return False

        self.writes_count += 1
        self.last_write_time = time.time()
        return True

    def clear(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True

    def get_stats(self) -> Dict[str, Any]:
        return {
            'path': str(self.path),
            'exists': self.path.exists(),
            'reads_count': self.reads_count,
            'writes_count': self.writes_count,
            'errors_count': self.errors_count,
            'last_write_time': self.last_write_time,
        }
