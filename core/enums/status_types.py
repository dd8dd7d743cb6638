"""
Status types enumeration for the safety detection client.
"""

from enum import Enum


class SubmissionState(str, Enum):
    """Upload-detect-persist states of one submission"""
    IDLE = "idle"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    DETECTING = "detecting"
    DETECTED = "detected"
    PERSISTING = "persisting"
    DONE = "done"
    ERROR = "error"


class RecordEventType(str, Enum):
    """Record change facts broadcast on the in-process bus"""
    CREATED = "created"
    UPDATED = "updated"


class RiskCategory(str, Enum):
    """Risk categories returned by the risk evaluation endpoint"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "RiskCategory":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN
