# =============================================================================
# clinic_core/errors/__init__.py
# Centralized Error Handling for the Clinic Record Store
# =============================================================================

from .exceptions import (
    ClinicStoreError,
    TierUnavailableError,
    StorageFaultError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    notify_failure,
)

__all__ = [
    # Exceptions
    "ClinicStoreError",
    "TierUnavailableError",
    "StorageFaultError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "notify_failure",
]
