"""Uniform result object returned by booking operations."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .exceptions import BookingError


@dataclass
class ServiceResult:
    """Result object for booking operations."""
    success: bool
    data: Any = None
    error_code: Optional[str] = None
    message: str = ""
    details: Optional[Dict[str, Any]] = None
    cached: bool = False

    @classmethod
    def ok(cls, data: Any, cached: bool = False) -> "ServiceResult":
        return cls(success=True, data=data, cached=cached)

    @classmethod
    def fail(cls, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ServiceResult":
        return cls(success=False, error_code=code, message=message, details=details)

    @classmethod
    def from_error(cls, error: BookingError) -> "ServiceResult":
        return cls.fail(error.code, error.message, error.details)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        error: Dict[str, Any] = {"code": self.error_code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}
