# core/models/detection_models.py
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from core.enums import BoxUnits
from core.exceptions import NormalizationError
from shared.utils.timestamps import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

# Un-normalized entry as returned by the inference endpoint
RawDetection = Dict[str, Any]


def is_number(value: Any) -> bool:
    """True for finite int/float values (bool excluded)"""
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


@dataclass(frozen=True)
class BoundingBox:
    """Bounding box {x, y, width, height}"""
    x: float
    y: float
    width: float
    height: float
    units: BoxUnits = BoxUnits.PIXELS

    @classmethod
    def from_corners(cls, box: Sequence[float], units: BoxUnits = BoxUnits.PIXELS) -> 'BoundingBox':
        """Build from [x1, y1, x2, y2] corner coordinates"""
        x1, y1, x2, y2 = box
        return cls(x=x1, y=y1, width=x2 - x1, height=y2 - y1, units=units)

    def to_normalized(self, frame_width: float, frame_height: float) -> 'BoundingBox':
        if self.units == BoxUnits.NORMALIZED:
            return self
        if frame_width <= 0 or frame_height <= 0:
            raise ValueError(f"Invalid frame size {frame_width}x{frame_height}")
        return BoundingBox(
            x=self.x / frame_width,
            y=self.y / frame_height,
            width=self.width / frame_width,
            height=self.height / frame_height,
            units=BoxUnits.NORMALIZED,
        )

    def to_pixels(self, frame_width: float, frame_height: float) -> 'BoundingBox':
        if self.units == BoxUnits.PIXELS:
            return self
        return BoundingBox(
            x=self.x * frame_width,
            y=self.y * frame_height,
            width=self.width * frame_width,
            height=self.height * frame_height,
            units=BoxUnits.PIXELS,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], units: BoxUnits = BoxUnits.PIXELS) -> 'BoundingBox':
        values = [data.get(k) for k in ('x', 'y', 'width', 'height')]
        if not all(is_number(v) for v in values):
            raise NormalizationError(f"Invalid bounding box: {data}", entry=data)
        return cls(*values, units=units)


@dataclass(frozen=True)
class Detection:
    """One recognized object instance"""
    label: str
    confidence: float
    bounding_box: Optional[BoundingBox] = None
    detected_at: Optional[datetime] = None
    source: Optional[str] = None  # detector that produced it, informational

    def to_dict(self) -> Dict[str, Any]:
        """Wire form stored by the backend"""
        data: Dict[str, Any] = {
            'object': self.label,
            'confidence': self.confidence,
        }
        if self.bounding_box is not None:
            data['bbox'] = self.bounding_box.to_dict()
        if self.detected_at is not None:
            data['detectedAt'] = format_timestamp(self.detected_at)
        if self.source:
            data['detector'] = self.source
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Detection':
        """Parse a stored detection; accepts both backend and canonical key names"""
        if not isinstance(data, Mapping):
            raise NormalizationError("Detection is not an object", entry=data)

        label = data.get('object', data.get('label'))
        if not isinstance(label, str) or not label.strip():
            raise NormalizationError("Detection has no label", entry=data)

        confidence = data.get('confidence')
        if not is_number(confidence):
            raise NormalizationError("Detection confidence is not numeric", entry=data)

        bbox_data = data.get('bbox', data.get('boundingBox'))
        bbox = BoundingBox.from_dict(bbox_data) if isinstance(bbox_data, Mapping) else None

        return cls(
            label=label.strip(),
            confidence=float(confidence),
            bounding_box=bbox,
            detected_at=parse_timestamp(data.get('detectedAt')),
            source=data.get('detector', data.get('source')),
        )


def estimate_avg_confidence(detections: Iterable[Detection]) -> float:
    """Display-only mean confidence before the server value is known"""
    confidences = [d.confidence for d in detections]
    if not confidences:
        return 0.0
    return sum(confidences) / len(confidences)


def parse_detections(items: Any) -> Tuple[Detection, ...]:
    """Parse a stored detection list, dropping entries that do not parse"""
    if not isinstance(items, (list, tuple)):
        return ()
    parsed: List[Detection] = []
    for item in items:
        try:
            parsed.append(Detection.from_dict(item))
        except NormalizationError as e:
            logger.warning(f"⚠️ Dropping stored detection: {e}")
    return tuple(parsed)


@dataclass(frozen=True)
class ImageRecord:
    """Image + detections, the unit of persistence and synchronization"""
    id: Optional[str] = None
    filename: str = ""
    original_name: str = ""
    mime_type: str = ""
    size_bytes: int = 0
    url: str = ""
    created_at: Optional[datetime] = None
    detections: Tuple[Detection, ...] = ()
    avg_confidence: Optional[float] = None  # authoritative only when server-computed
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        if not isinstance(self.detections, tuple):
            object.__setattr__(self, 'detections', tuple(self.detections))

        units = {d.bounding_box.units for d in self.detections if d.bounding_box is not None}
        if len(units) > 1:
            raise ValueError("Pixel and normalized boxes cannot be mixed within one record")

    @property
    def is_provisional(self) -> bool:
        """No server-assigned id yet"""
        return self.id is None

    @property
    def detection_count(self) -> int:
        return len(self.detections)

    @property
    def display_name(self) -> str:
        return self.original_name or self.filename

    def to_dict(self) -> Dict[str, Any]:
        return {
            '_id': self.id,
            'filename': self.filename,
            'originalName': self.original_name,
            'mimeType': self.mime_type,
            'size': self.size_bytes,
            'url': self.url,
            'createdAt': format_timestamp(self.created_at),
            'detections': [d.to_dict() for d in self.detections],
            'avgConfidence': self.avg_confidence,
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ImageRecord':
        """Create ImageRecord from a backend document"""
        record_id = data.get('_id', data.get('id'))
        size = data.get('size', data.get('sizeBytes'))
        avg = data.get('avgConfidence')
        metadata = data.get('metadata')

        return cls(
            id=str(record_id) if record_id not in (None, "") else None,
            filename=data.get('filename') or "",
            original_name=data.get('originalName') or "",
            mime_type=data.get('mimeType') or "",
            size_bytes=int(size) if is_number(size) else 0,
            url=data.get('url') or "",
            created_at=parse_timestamp(data.get('createdAt')),
            detections=parse_detections(data.get('detections')),
            avg_confidence=float(avg) if is_number(avg) else None,
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )


@dataclass(frozen=True)
class DashboardSnapshot:
    """Server-computed rollup, fallback source for analytics"""
    avg_confidence: Optional[float] = None
    response_time: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional['DashboardSnapshot']:
        if not isinstance(data, Mapping):
            return None
        avg = data.get('avgConfidence')
        response_time = data.get('responseTime')
        extra = {k: v for k, v in data.items() if k not in ('avgConfidence', 'responseTime')}
        return cls(
            avg_confidence=float(avg) if is_number(avg) else None,
            response_time=float(response_time) if is_number(response_time) else None,
            extra=extra,
        )
