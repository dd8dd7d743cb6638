# core/exceptions.py
from typing import Any, Optional

class SafetyDetectionException(Exception):
    """Base exception for the safety detection client"""
    pass

class AcquisitionError(SafetyDetectionException):
    """Bad or unreadable image file / frame"""
    def __init__(self, message: str, filename: Optional[str] = None):
        super().__init__(message)
        self.filename = filename

class TransportError(SafetyDetectionException):
    """Non-2xx response, network failure or malformed body from an external service"""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text
        self.endpoint = endpoint

class NormalizationError(SafetyDetectionException):
    """Malformed inference entry; recovered locally by dropping the entry"""
    def __init__(self, message: str, entry: Any = None):
        super().__init__(message)
        self.entry = entry

class EvaluationError(SafetyDetectionException):
    """Risk evaluation call failed"""
    pass

class NotificationError(SafetyDetectionException):
    """Email notification could not be sent"""
    pass

class TransportUnavailableError(TransportError):
    """Network failure, timeout or 5xx; safe to retry for read-only calls"""
    pass
