# shared/utils/timestamps.py
import logging
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


def parse_timestamp(ts: Any) -> Optional[datetime]:
    """Parse a wire timestamp (ISO 8601 string, epoch seconds or milliseconds)"""
    if ts is None or ts == "":
        return None
    if isinstance(ts, bool):
        return None
    try:
        if isinstance(ts, datetime):
            return ts
        if isinstance(ts, (int, float)):
            # Convert milliseconds to seconds if needed
            if ts > 1e10:
                ts = ts / 1000
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        if isinstance(ts, str):
            value = ts.strip()
            if value.isdigit():
                return parse_timestamp(int(value))
            return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (ValueError, OverflowError, OSError) as e:
        logger.warning(f"⚠️ Unparseable timestamp {ts!r}: {e}")
        return None

    logger.warning(f"⚠️ Unsupported timestamp type {type(ts).__name__}")
    return None


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as ISO 8601 with millisecond precision and a Z suffix"""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
