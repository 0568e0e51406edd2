# =============================================================================
# clinic_core/data/__init__.py
# Storage tiers: Supabase tables (remote) and Excel workbooks (local)
# =============================================================================

from .criteria import SearchCriteria
from .excel_table import ExcelTable
from .supabase_client import (
    RemoteTable,
    client_for,
    clear_client_cache,
    get_supabase_client,
)

__all__ = [
    "SearchCriteria",
    "ExcelTable",
    "RemoteTable",
    "client_for",
    "clear_client_cache",
    "get_supabase_client",
]
