# =============================================================================
# clinic_core/offline/dropdown_options.py
# Editable dropdown option lists (doctor names, departments, lab tests ...)
# =============================================================================
"""
Option lists shown in the form comboboxes.

Remote tier: table ``dropdown_options`` with columns ``field_name`` and
``option_value``. File tier: ``dropdown_options.json`` mapping each field name
to an alphabetically sorted list. Values are compared case-insensitively, so
adding "dr. rao" when "Dr. Rao" exists is a successful no-op.
"""

from __future__ import annotations
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from clinic_core.config import StoreConfig
from clinic_core.data import RemoteTable, client_for
from clinic_core.errors import StorageFaultError
from clinic_core.services import ServiceResult

from .record_store import TieredStore

REMOTE_TABLE = "dropdown_options"
OPTIONS_FILE_NAME = "dropdown_options.json"

VALID_FIELDS = (
    "doctorName",
    "department",
    "referredBy",
    "medicineOptions",
    "presentComplainOptions",
    "previousHistoryOptions",
    "othersOptions",
    "others1Options",
    "operationDetailsOptions",
    "operationProcedureOptions",
    "provisionDiagnosisOptions",
    "labTestOptions",
)


class DropdownOptionsStore(TieredStore):
    """
    Dual-tier store for dropdown option lists.

    Usage:
        options = DropdownOptionsStore(settings.store_config(OPTIONS_FILE_NAME))
        options.add_option("doctorName", "Dr. Rao")
        options.get_options("doctorName").data   # ["Dr. Rao"]
    """

    name = "dropdown_options"

    def __init__(self, config: StoreConfig, remote_client: Any = None):
        client = remote_client if remote_client is not None else client_for(config)
        super().__init__(RemoteTable(client, REMOTE_TABLE), config.local_file_path)

    # =========================================================================
    # FILE TIER
    # =========================================================================

    def _read_file(self) -> Dict[str, List[str]]:
        if not self.local_path.exists():
            return {}
        try:
            with open(self.local_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageFaultError(
                f"Cannot read options file: {e}",
                path=str(self.local_path),
                operation="read",
            ) from e
        if not isinstance(data, dict):
            raise StorageFaultError(
                "Options file does not hold a mapping",
                path=str(self.local_path),
                operation="read",
            )
        return {str(k): [str(v) for v in values] for k, values in data.items()}

    def _write_file(self, data: Dict[str, List[str]]) -> None:
        tmp_path: Optional[str] = None
        try:
            self.local_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.local_path.stem}.", suffix=".json", dir=self.local_path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.local_path)
            tmp_path = None
        except OSError as e:
            raise StorageFaultError(
                f"Cannot write options file: {e}",
                path=str(self.local_path),
                operation="write",
            ) from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def get_options(self, field_name: str) -> ServiceResult:
        """Sorted option values for ``field_name``."""
        if field_name not in VALID_FIELDS:
            return self._invalid(f"Invalid field name: {field_name!r}")

        def from_remote() -> ServiceResult:
            rows = self.remote.fetch_eq(
                "field_name", field_name, order_by="option_value", desc=False
            )
            return ServiceResult.ok([row["option_value"] for row in rows if row.get("option_value")])

        def from_file() -> ServiceResult:
            return ServiceResult.ok(sorted(self._read_file().get(field_name, []), key=str.lower))

        return self._dispatch("get_options", from_remote, from_file)

    def add_option(self, field_name: str, value: Optional[str]) -> ServiceResult:
        """
        Add ``value`` to the options of ``field_name``.

        Returns:
            ServiceResult whose data is True when the value was added and False
            when it already existed
        """
        if field_name not in VALID_FIELDS:
            return self._invalid(f"Invalid field name: {field_name!r}")
        trimmed = (value or "").strip()
        if not trimmed:
            return self._invalid("Value cannot be empty")

        def into_remote() -> ServiceResult:
            rows = self.remote.fetch_eq("field_name", field_name)
            existing = {str(row.get("option_value", "")).lower() for row in rows}
            if trimmed.lower() in existing:
                return ServiceResult.ok(False, metadata={"message": "Value already exists"})
            self.remote.insert({"field_name": field_name, "option_value": trimmed})
            self.logger.info(f"Added {trimmed!r} to {field_name} options in Supabase")
            return ServiceResult.ok(True, metadata={"message": "Option added successfully"})

        def into_file() -> ServiceResult:
            data = self._read_file()
            options = data.get(field_name, [])
            if any(option.lower() == trimmed.lower() for option in options):
                return ServiceResult.ok(False, metadata={"message": "Value already exists"})
            data[field_name] = sorted(options + [trimmed], key=str.lower)
            self._write_file(data)
            self.logger.info(f"Added {trimmed!r} to {field_name} options in {self.local_path.name}")
            return ServiceResult.ok(True, metadata={"message": "Option added successfully"})

        return self._dispatch("add_option", into_remote, into_file)
