"""Error taxonomy for the ingredient analysis pipeline.

Validation errors surface to callers. Dataset and AI errors are caught by the
analysis orchestrator and turned into a fallback to the next tier. The rules
tier never raises.
"""

import enum
from typing import Any, Dict, Optional


class ErrorCode(str, enum.Enum):
    CONFIGURATION = "CONFIGURATION_ERROR"
    UNAVAILABLE = "UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    VALIDATION = "VALIDATION_ERROR"


class SafeScanError(Exception):
    code: ErrorCode = ErrorCode.UNAVAILABLE

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(f"[{self.code.value}] {message}")

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.code.value,
            "message": self.message,
            "context": self.context,
        }


class ConfigurationError(SafeScanError):
    """A required credential or setting is missing."""

    code = ErrorCode.CONFIGURATION


class UnavailableError(SafeScanError):
    """A dependency could not be reached, failed, or holds no data."""

    code = ErrorCode.UNAVAILABLE


class ServiceTimeoutError(SafeScanError):
    code = ErrorCode.TIMEOUT


class MalformedResponseError(SafeScanError):
    """A tier returned data that could not be parsed."""

    code = ErrorCode.MALFORMED_RESPONSE


class InputValidationError(SafeScanError):
    code = ErrorCode.VALIDATION

    def __init__(self, field: str, reason: str, value: Any = None):
        context: Dict[str, Any] = {"field": field, "reason": reason}
        if value is not None:
            context["value"] = str(value)[:200]
        super().__init__(f"Validation failed for '{field}': {reason}", context)
        self.field = field
        self.reason = reason


class DatasetError(UnavailableError):
    def __init__(self, message: str, operation: str = "lookup"):
        super().__init__(f"Dataset {operation} failed: {message}", {"operation": operation})
        self.operation = operation


class AIConfigError(ConfigurationError):
    def __init__(self, setting: str):
        super().__init__(f"AI not configured. Missing {setting.upper()}", {"setting": setting})
        self.setting = setting


class AIUnavailableError(UnavailableError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        context: Dict[str, Any] = {}
        if status_code is not None:
            context["status_code"] = status_code
        super().__init__(f"AI service unavailable: {message}", context)
        self.status_code = status_code


class AITimeoutError(ServiceTimeoutError):
    def __init__(self, timeout: float):
        super().__init__(f"AI service timed out after {timeout:g}s", {"timeout": timeout})
        self.timeout = timeout


class AIResponseError(MalformedResponseError):
    def __init__(self, message: str, attempts: int):
        super().__init__(f"AI response could not be parsed: {message}", {"attempts": attempts})
        self.attempts = attempts


class OCRUnavailableError(UnavailableError):
    pass


class OCRTimeoutError(ServiceTimeoutError):
    pass


class OCRAuthError(ConfigurationError):
    pass
