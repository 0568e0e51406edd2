# =============================================================================
# clinic_core/config/__init__.py
# Application and store configuration
# =============================================================================

from .settings import (
    AppSettings,
    StoreConfig,
    DEFAULT_REMOTE_TIMEOUT,
    default_data_dir,
    load_secrets_toml,
    load_settings,
)

__all__ = [
    "AppSettings",
    "StoreConfig",
    "DEFAULT_REMOTE_TIMEOUT",
    "default_data_dir",
    "load_secrets_toml",
    "load_settings",
]
