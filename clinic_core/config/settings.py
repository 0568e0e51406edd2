# =============================================================================
# clinic_core/config/settings.py
# Store configuration: remote credentials and local workbook locations
# =============================================================================
"""
Configuration is resolved once at process start and handed to the stores
explicitly. Nothing below the service layer reads the environment.

Lookup order for the remote credentials:
1. ``.streamlit/secrets.toml``::

       [supabase]
       url = "https://your-project.supabase.co"
       key = "your-anon-key"

2. Environment variables (a ``.env`` file is loaded first):
   ``SUPABASE_URL`` and ``SUPABASE_KEY`` (or ``SUPABASE_ANON_KEY``).

Other environment variables:
    CLINIC_DATA_DIR         directory holding the Excel tables
    CLINIC_REMOTE_TIMEOUT   seconds before a remote call is abandoned
    CLINIC_LOG_LEVEL        logging level name
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import load_dotenv

from clinic_core.errors import ConfigurationError
from clinic_core.logging import get_logger

try:
    import tomllib
except ImportError:  # Python < 3.11
    import tomli as tomllib

logger = get_logger(__name__)

DEFAULT_REMOTE_TIMEOUT = 5.0
DEFAULT_SECRETS_PATH = Path(".streamlit") / "secrets.toml"
APP_DIR_NAME = "ShehData"


def default_data_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Application-data directory: %APPDATA%/ShehData on Windows, ~/.clinic_data elsewhere."""
    environ = os.environ if environ is None else environ
    appdata = environ.get("APPDATA")
    if appdata:
        return Path(appdata) / APP_DIR_NAME
    return Path.home() / ".clinic_data"


@dataclass(frozen=True)
class StoreConfig:
    """Per-table configuration for a dual-tier record store."""
    local_file_path: Path
    remote_endpoint: Optional[str] = None
    remote_key: Optional[str] = None
    remote_timeout: float = DEFAULT_REMOTE_TIMEOUT

    @property
    def remote_configured(self) -> bool:
        """Both remote options must be present for the remote tier to be tried."""
        return bool(self.remote_endpoint) and bool(self.remote_key)


@dataclass
class AppSettings:
    """Process-wide settings from which per-table store configs are derived."""
    data_dir: Path = field(default_factory=default_data_dir)
    remote_endpoint: Optional[str] = None
    remote_key: Optional[str] = None
    remote_timeout: float = DEFAULT_REMOTE_TIMEOUT
    log_level: str = "INFO"

    @property
    def remote_configured(self) -> bool:
        return bool(self.remote_endpoint) and bool(self.remote_key)

    def store_config(self, file_name: str) -> StoreConfig:
        """Build the store config for the table stored in ``file_name``."""
        return StoreConfig(
            local_file_path=Path(self.data_dir) / file_name,
            remote_endpoint=self.remote_endpoint,
            remote_key=self.remote_key,
            remote_timeout=self.remote_timeout,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Settings summary safe for logging (the key is masked)."""
        return {
            "data_dir": str(self.data_dir),
            "remote_endpoint": self.remote_endpoint,
            "remote_key": "***" if self.remote_key else None,
            "remote_timeout": self.remote_timeout,
            "log_level": self.log_level,
        }


def load_secrets_toml(secrets_path: Path) -> Dict[str, Optional[str]]:
    """Read the ``[supabase]`` table of a Streamlit secrets file."""
    if not secrets_path.exists():
        return {}

    try:
        with open(secrets_path, "rb") as f:
            secrets = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(
            f"Could not read secrets file: {e}",
            config_key=str(secrets_path),
        ) from e

    supabase = secrets.get("supabase", {})
    return {"url": supabase.get("url"), "key": supabase.get("key")}


def _parse_timeout(raw: Union[str, float, None]) -> float:
    if raw is None or raw == "":
        return DEFAULT_REMOTE_TIMEOUT
    try:
        timeout = float(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Remote timeout must be a number, got {raw!r}",
            config_key="CLINIC_REMOTE_TIMEOUT",
            expected_type="float",
        )
    if timeout <= 0:
        raise ConfigurationError(
            "Remote timeout must be positive",
            config_key="CLINIC_REMOTE_TIMEOUT",
            expected_type="float",
        )
    return timeout


def load_settings(
    secrets_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    use_dotenv: bool = True,
) -> AppSettings:
    """
    Resolve application settings from the secrets file and the environment.

    Args:
        secrets_path: Streamlit secrets file (default: .streamlit/secrets.toml)
        environ: Mapping used instead of ``os.environ`` (tests)
        use_dotenv: Whether to load a ``.env`` file into the environment first

    Returns:
        AppSettings instance
    """
    if use_dotenv and environ is None:
        load_dotenv()
    environ = os.environ if environ is None else environ

    secrets = load_secrets_toml(Path(secrets_path or DEFAULT_SECRETS_PATH))

    endpoint = secrets.get("url") or environ.get("SUPABASE_URL") or None
    key = (
        secrets.get("key")
        or environ.get("SUPABASE_KEY")
        or environ.get("SUPABASE_ANON_KEY")
        or None
    )

    data_dir = environ.get("CLINIC_DATA_DIR")
    settings = AppSettings(
        data_dir=Path(data_dir) if data_dir else default_data_dir(environ),
        remote_endpoint=endpoint,
        remote_key=key,
        remote_timeout=_parse_timeout(environ.get("CLINIC_REMOTE_TIMEOUT")),
        log_level=environ.get("CLINIC_LOG_LEVEL", "INFO"),
    )

    if not settings.remote_configured:
        logger.info("Supabase credentials not found; using local Excel tables only")

    return settings
