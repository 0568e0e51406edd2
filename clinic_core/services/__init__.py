# =============================================================================
# clinic_core/services/__init__.py
# Service Layer primitives shared by the record stores
# =============================================================================

from .base_service import BaseService, ServiceResult, ErrorKind

__all__ = [
    "BaseService",
    "ServiceResult",
    "ErrorKind",
]
