"""
Core enumerations package for the safety detection client.
"""

from .equipment_types import EquipmentType, BoxUnits
from .status_types import SubmissionState, RecordEventType, RiskCategory

__all__ = [
    # Equipment types
    'EquipmentType',
    'BoxUnits',

    # Status types
    'SubmissionState',
    'RecordEventType',
    'RiskCategory',
]
