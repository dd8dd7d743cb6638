# Core Models Package
"""
Core data models for the safety detection client.
Contains detection records, normalization, settings and risk results.
"""

from .detection_models import (
    BoundingBox,
    Detection,
    ImageRecord,
    DashboardSnapshot,
    RawDetection,
    estimate_avg_confidence,
)
from .normalization import normalize_raw_detection, normalize_detections
from .settings_models import DetectionSettings, ObjectToggle, DEFAULT_OBJECTS
from .risk_models import RiskAssessment, RiskAction
from .image_file import ImageFile

__all__ = [
    'BoundingBox',
    'Detection',
    'ImageRecord',
    'DashboardSnapshot',
    'RawDetection',
    'estimate_avg_confidence',
    'normalize_raw_detection',
    'normalize_detections',
    'DetectionSettings',
    'ObjectToggle',
    'DEFAULT_OBJECTS',
    'RiskAssessment',
    'RiskAction',
    'ImageFile',
]
