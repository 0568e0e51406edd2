# =============================================================================
# clinic_core/offline/__init__.py
# Dual-tier storage for the clinic desktop application
# =============================================================================
"""
Dual-Tier Storage Module

Every clinic table (patients, prescriptions, labs, medicines, opticals ...)
lives in Supabase when credentials are configured, with a local Excel
workbook as the fallback table.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                      DUAL-TIER ARCHITECTURE                      │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                 UnifiedDataService                        │  │
│   │       (request channels - the UI uses this only)          │  │
│   └──────────────────────────────────────────────────────────┘  │
│                            │                                     │
│     ┌──────────────────────┼───────────────────────┐            │
│     ▼                      ▼                       ▼            │
│ ┌──────────────┐  ┌──────────────────┐  ┌────────────────────┐  │
│ │DualTierRecord│  │DropdownOptions   │  │DispensingService   │  │
│ │Store (x9)    │  │Store             │  │(medicines/optical) │  │
│ └──────────────┘  └──────────────────┘  └────────────────────┘  │
│         │  1. try remote        2. on failure: file             │
│   ┌─────┴────────────┐        ┌─────────────────┐               │
│   ▼                  │        ▼                 │               │
│ ┌────────┐           │   ┌──────────┐           │               │
│ │Supabase│  never    │   │  Excel   │           │               │
│ │(Cloud) │  both     │   │ (Local)  │           │               │
│ └────────┘           │   └──────────┘           │               │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from clinic_core.offline import get_data_service

service = get_data_service()
patients = service.handle("getPatients")
"""

from clinic_core.offline.entities import (
    EntitySpec,
    ENTITY_SPECS,
    get_entity_spec,
)

from clinic_core.offline.record_store import (
    DualTierRecordStore,
    TieredStore,
)

from clinic_core.offline.dropdown_options import (
    DropdownOptionsStore,
    VALID_FIELDS,
)

from clinic_core.offline.dispensing import (
    DispensingService,
)

from clinic_core.offline.unified_data_service import (
    Channel,
    UnifiedDataService,
    get_data_service,
)

__all__ = [
    # Entity configuration
    "EntitySpec",
    "ENTITY_SPECS",
    "get_entity_spec",
    # Stores
    "DualTierRecordStore",
    "TieredStore",
    "DropdownOptionsStore",
    "VALID_FIELDS",
    "DispensingService",
    # Unified Service (Main API)
    "Channel",
    "UnifiedDataService",
    "get_data_service",
]
