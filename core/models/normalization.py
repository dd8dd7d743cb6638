# core/models/normalization.py
"""
Normalization of inference endpoint output into canonical Detections.

The inference service returns entries shaped like
``{"class_name": str, "confidence": float, "box": [x1, y1, x2, y2]}``.
Entries that do not match are dropped, so a batch of N raw results may
normalize to fewer than N detections.
"""
import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from core.enums import BoxUnits, EquipmentType
from core.exceptions import NormalizationError
from .detection_models import BoundingBox, Detection, RawDetection, is_number

logger = logging.getLogger(__name__)


def normalize_raw_detection(
    raw: Any,
    frame_size: Optional[Tuple[float, float]] = None,
    detected_at: Optional[datetime] = None,
    source: Optional[str] = None,
) -> Detection:
    """
    Convert one raw inference entry into a Detection

    Args:
        raw: Entry from the inference endpoint
        frame_size: (width, height); when given the box is expressed in normalized units
        detected_at: Inference timestamp to stamp on the detection
        source: Detector identifier

    Raises:
        NormalizationError: missing class name, bad confidence or bad box
    """
    if not isinstance(raw, Mapping):
        raise NormalizationError("Inference entry is not an object", entry=raw)

    class_name = raw.get('class_name')
    if not isinstance(class_name, str) or not class_name.strip():
        raise NormalizationError("Missing class_name", entry=raw)

    confidence = raw.get('confidence')
    if not is_number(confidence):
        raise NormalizationError(f"Non-numeric confidence: {confidence!r}", entry=raw)
    if not 0.0 <= confidence <= 1.0:
        raise NormalizationError(f"Confidence out of range: {confidence}", entry=raw)

    box = raw.get('box')
    if not isinstance(box, (list, tuple)) or len(box) != 4:
        raise NormalizationError(f"Box must have 4 coordinates: {box!r}", entry=raw)
    if not all(is_number(v) for v in box):
        raise NormalizationError(f"Non-numeric box coordinate: {box!r}", entry=raw)

    label = class_name.strip()
    if not EquipmentType.is_known(label):
        logger.debug(f"❔ Keeping detection with unknown label {label!r}")

    bbox = BoundingBox.from_corners(box, units=BoxUnits.PIXELS)
    if frame_size is not None:
        try:
            bbox = bbox.to_normalized(*frame_size)
        except ValueError as e:
            raise NormalizationError(str(e), entry=raw) from e

    return Detection(
        label=label,
        confidence=float(confidence),
        bounding_box=bbox,
        detected_at=detected_at,
        source=source,
    )


def normalize_detections(
    raws: Iterable[RawDetection],
    frame_size: Optional[Tuple[float, float]] = None,
    detected_at: Optional[datetime] = None,
    source: Optional[str] = None,
) -> List[Detection]:
    """Normalize a batch, dropping malformed entries"""
    detections: List[Detection] = []
    dropped = 0

    for raw in raws or []:
        try:
            detections.append(
                normalize_raw_detection(raw, frame_size=frame_size, detected_at=detected_at, source=source)
            )
        except NormalizationError as e:
            dropped += 1
            logger.debug(f"🔇 Dropped inference entry: {e} ({e.entry!r})")

    if dropped:
        logger.info(f"🧹 Normalized {len(detections)} detections, dropped {dropped} malformed entries")

    return detections
