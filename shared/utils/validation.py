# shared/utils/validation.py

from typing import Any, Dict, Iterable, Optional

class ValidationError(Exception):
    """Custom exception for validation errors."""
    pass

def validate_response(response: Dict[str, Any], required_keys: Optional[Iterable[str]] = None) -> bool:
    """
    Validate a dictionary response from WebAPI or external service.

    Args:
        response (Dict[str, Any]): Response data.
        required_keys (list, optional): List of keys that must exist in response.

    Returns:
        bool: True if valid, raises ValidationError if invalid.
    """
    if not isinstance(response, dict):
        raise ValidationError(f"Response is not a dict: {response!r}")

    if required_keys:
        missing_keys = [k for k in required_keys if k not in response]
        if missing_keys:
            raise ValidationError(f"Missing keys in response: {missing_keys}")

    return True

def validate_list_response(response: Any) -> bool:
    """Validate that a response is a JSON array."""
    if not isinstance(response, list):
        raise ValidationError(f"Response is not a list: {type(response).__name__}")
    return True
