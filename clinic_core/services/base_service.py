# =============================================================================
# clinic_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from dataclasses import dataclass
from typing import Optional, Dict, Any

from clinic_core.logging import get_logger, LogContext


class ErrorKind:
    """Error codes carried by failed results."""
    NOT_FOUND = "NOT_FOUND"
    STORAGE_FAULT = "STORAGE_FAULT"
    VALIDATION = "VALIDATION"
    UNKNOWN = "UNKNOWN"


@dataclass
class ServiceResult:
    """
    Standard result container for service operations.

    Provides consistent structure for all service method returns.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def tier(self) -> Optional[str]:
        """Name of the storage tier that produced this result, if any."""
        return (self.metadata or {}).get("tier")

    def value_or(self, default: Any) -> Any:
        """Return the payload on success, otherwise ``default``."""
        return self.data if self.success else default

    @classmethod
    def ok(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        """Create a successful result"""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = ErrorKind.UNKNOWN,
        metadata: Dict[str, Any] = None
    ) -> ServiceResult:
        """Create a failed result"""
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            metadata=metadata,
        )


class BaseService(ABC):
    """
    Abstract base class for all services.

    Provides common functionality:
    - Logging
    - Result standardization

    Usage:
        class MyService(BaseService):
            def do_something(self) -> ServiceResult:
                with self.log_operation("Doing something"):
                    result = ...
                    return ServiceResult.ok(result)
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def log_operation(self, operation: str) -> LogContext:
        """
        Create a logging context for an operation.

        Usage:
            with self.log_operation("Rewriting labs table"):
                table.write(records)
        """
        return LogContext(self.logger, operation)
