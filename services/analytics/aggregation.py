# services/analytics/aggregation.py
"""
Derived analytics over a snapshot of image records.

Every function here is pure: it recomputes from the records it is given,
keeps no state between calls and returns the same result for any ordering
of the input.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from core.models import DashboardSnapshot, ImageRecord
from shared.decorators.timing import time_execution

logger = logging.getLogger(__name__)

PALETTE = ['#6366F1', '#8B5CF6', '#EC4899', '#F59E0B', '#10B981', '#3B82F6', '#EF4444', '#F472B6']

HOURS_PER_DAY = 24


@dataclass(frozen=True)
class MonthlyBucket:
    year: int
    month: int
    label: str          # short month name, e.g. "Mar"
    detections: int
    accuracy: float     # mean avgConfidence, 0 when no record carries one


@dataclass(frozen=True)
class EquipmentSlice:
    name: str
    value: int
    color: str


@dataclass(frozen=True)
class HourlyBucket:
    hour: int
    label: str          # "HH:00"
    detections: int


@dataclass(frozen=True)
class AnalyticsSummary:
    record_count: int
    total_detections: int
    avg_accuracy: float
    safety_score: float
    response_time_ms: Optional[float]
    monthly: List[MonthlyBucket] = field(default_factory=list)
    distribution: List[EquipmentSlice] = field(default_factory=list)
    hourly: List[HourlyBucket] = field(default_factory=list)


def _round_half_up(value: float, ndigits: int) -> float:
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def _to_zone(dt: datetime, tz: Optional[tzinfo]) -> datetime:
    """Aware timestamps are viewed in `tz` (local zone when None); naive ones are taken as-is"""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(tz)


def _ordered(records: Iterable[ImageRecord]) -> List[ImageRecord]:
    """Canonical total order so first-seen logic is input-order independent"""
    def key(record: ImageRecord):
        created = record.created_at
        timestamp = created.timestamp() if created is not None else float('-inf')
        # Records equal on this key contribute the same labels in the same order
        labels = tuple(d.label for d in record.detections)
        return (timestamp, record.id or "", record.filename, record.original_name, labels)
    return sorted(records, key=key)


def total_detections(records: Iterable[ImageRecord]) -> int:
    """Sum of detection counts across all records"""
    return sum(record.detection_count for record in records)


def avg_accuracy(records: Iterable[ImageRecord], dashboard: Optional[DashboardSnapshot] = None) -> float:
    """
    Average accuracy as a percentage rounded to 0.1

    The dashboard value wins when present; otherwise the mean of record
    avgConfidence values greater than zero.
    """
    raw = 0.0
    if dashboard is not None and dashboard.avg_confidence is not None:
        raw = dashboard.avg_confidence
    else:
        values = [r.avg_confidence for r in records if r.avg_confidence is not None and r.avg_confidence > 0]
        if values:
            raw = sum(values) / len(values)
    return math.floor(raw * 1000 + 0.5) / 10


def safety_score(accuracy: float) -> float:
    return _round_half_up(accuracy, 1)


def month_window(n: int, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> List[Tuple[int, int]]:
    """(year, month) of the last n calendar months ending at the current one, oldest first"""
    if n < 1:
        raise ValueError("Month window must be at least 1")
    current = _to_zone(now, tz) if now is not None else datetime.now(tz).astimezone(tz)
    base = current.year * 12 + (current.month - 1)
    return [((base - i) // 12, (base - i) % 12 + 1) for i in range(n - 1, -1, -1)]


def monthly_volume(
    records: Iterable[ImageRecord],
    n: int = 6,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[MonthlyBucket]:
    """Detections and mean avgConfidence per month; records outside the window are dropped"""
    window = month_window(n, now=now, tz=tz)
    totals: Dict[Tuple[int, int], Dict[str, float]] = {
        key: {'detections': 0, 'accuracy_sum': 0.0, 'count': 0} for key in window
    }

    for record in records:
        if record.created_at is None:
            continue
        created = _to_zone(record.created_at, tz)
        bucket = totals.get((created.year, created.month))
        if bucket is None:
            continue
        bucket['detections'] += record.detection_count
        if record.avg_confidence is not None:
            bucket['accuracy_sum'] += record.avg_confidence
            bucket['count'] += 1

    result = []
    for year, month in window:
        bucket = totals[(year, month)]
        accuracy = _round_half_up(bucket['accuracy_sum'] / bucket['count'], 2) if bucket['count'] else 0.0
        result.append(MonthlyBucket(
            year=year,
            month=month,
            label=datetime(year, month, 1).strftime('%b'),
            detections=int(bucket['detections']),
            accuracy=accuracy,
        ))
    return result


def equipment_distribution(records: Iterable[ImageRecord], palette: Sequence[str] = PALETTE) -> List[EquipmentSlice]:
    """Detection counts per label; colors cycle through the palette in first-seen order"""
    counts: Dict[str, int] = {}
    for record in _ordered(records):
        for detection in record.detections:
            counts[detection.label] = counts.get(detection.label, 0) + 1

    return [
        EquipmentSlice(name=label, value=count, color=palette[i % len(palette)])
        for i, (label, count) in enumerate(counts.items())
    ]


def hourly_activity(records: Iterable[ImageRecord], tz: Optional[tzinfo] = None) -> List[HourlyBucket]:
    """Detections per hour of day, by detectedAt falling back to the record createdAt"""
    counts = [0] * HOURS_PER_DAY
    dropped = 0

    for record in records:
        for detection in record.detections:
            moment = detection.detected_at or record.created_at
            if moment is None:
                dropped += 1
                continue
            counts[_to_zone(moment, tz).hour] += 1

    if dropped:
        logger.debug(f"🕳️ {dropped} detections without any timestamp left out of hourly activity")

    return [HourlyBucket(hour=h, label=f"{h:02d}:00", detections=counts[h]) for h in range(HOURS_PER_DAY)]


@time_execution(slow_ms=250)
def build_summary(
    records: Sequence[ImageRecord],
    dashboard: Optional[DashboardSnapshot] = None,
    months: int = 6,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> AnalyticsSummary:
    """All analytics for one snapshot"""
    accuracy = avg_accuracy(records, dashboard)
    return AnalyticsSummary(
        record_count=len(records),
        total_detections=total_detections(records),
        avg_accuracy=accuracy,
        safety_score=safety_score(accuracy),
        response_time_ms=dashboard.response_time if dashboard is not None else None,
        monthly=monthly_volume(records, n=months, now=now, tz=tz),
        distribution=equipment_distribution(records),
        hourly=hourly_activity(records, tz=tz),
    )
