# =============================================================================
# clinic_core/data/excel_table.py
# Excel workbook persistence for the local (file) tier
# =============================================================================
"""
One workbook per entity type, one sheet per workbook. Each row is a record and
the header row is the union of every field name written so far, so unseen
fields simply become new columns on the next write.

Mutations are always "read the whole table, change it in memory, write the
whole table back". The write goes to a temporary file in the same directory
which is then renamed over the existing file, so a failed write leaves the previous
table intact.
"""

from __future__ import annotations
import os
import tempfile
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from openpyxl import Workbook
from openpyxl.utils.exceptions import IllegalCharacterError

from clinic_core.errors import StorageFaultError
from clinic_core.logging import get_logger

logger = get_logger(__name__)

Record = Dict[str, Any]

EXCEL_ENGINE = "openpyxl"


def _to_python(value: Any) -> Any:
    """Convert numpy/pandas scalars read from a sheet into plain Python values."""
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        as_float = float(value)
        return int(as_float) if as_float.is_integer() else as_float
    return value


def _is_empty_cell(value: Any) -> bool:
    if value is None or value == "":
        return True
    if isinstance(value, (list, dict, tuple, set)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _to_cell(value: Any) -> Any:
    """Nested values have no cell representation; store them as text."""
    if isinstance(value, (dict, list, tuple, set)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _as_text_cell(cell) -> None:
    """Keep values such as "=> review" or "#N/A" strings, not formulas or error codes."""
    if cell.data_type in ("f", "e"):
        cell.data_type = "s"


class ExcelTable:
    """
    A table held in a single-sheet Excel workbook.

    Usage:
        table = ExcelTable(Path("labs.xlsx"), sheet_name="Labs")
        records = table.read()
        records.append({"id": "...", "DATE": "2024-01-01"})
        table.write(records)
    """

    def __init__(self, path: Path, sheet_name: str, id_field: str = "id"):
        self.path = Path(path)
        self.sheet_name = sheet_name
        self.id_field = id_field

    def __repr__(self) -> str:
        return f"ExcelTable({str(self.path)!r}, sheet_name={self.sheet_name!r})"

    # =========================================================================
    # FILE LIFECYCLE
    # =========================================================================

    def exists(self) -> bool:
        return self.path.exists()

    def ensure_exists(self) -> None:
        """Create an empty workbook (and its directory) if the file is absent."""
        if self.path.exists():
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageFaultError(
                f"Cannot create data directory: {e}",
                path=str(self.path.parent),
                operation="create",
            ) from e
        self.write([])
        logger.info(f"Created new table file: {self.path}")

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    def read(self) -> List[Record]:
        """
        Load every record of the table, in file order.

        Returns:
            List of records; empty cells are omitted from each record

        Raises:
            StorageFaultError: If the workbook is missing, unreadable or malformed
        """
        self.ensure_exists()
        try:
            # Only blank cells are absent; "NA", "None" or "null" are ordinary values
            df = pd.read_excel(
                self.path,
                sheet_name=0,
                dtype=object,
                engine=EXCEL_ENGINE,
                keep_default_na=False,
                na_filter=False,
            )
        except Exception as e:
            raise StorageFaultError(
                f"Cannot read table file: {e}",
                path=str(self.path),
                operation="read",
            ) from e

        records = []
        for row in df.to_dict(orient="records"):
            record = {
                str(key): _to_python(value)
                for key, value in row.items()
                if not _is_empty_cell(value)
            }
            if record:
                records.append(record)
        return records

    def write(self, records: List[Record]) -> None:
        """
        Replace the whole table with ``records``.

        Raises:
            StorageFaultError: If the workbook cannot be written
        """
        columns = self._columns(records)
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = self.sheet_name

        tmp_path: Optional[str] = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.stem}.", suffix=".xlsx", dir=self.path.parent
            )
            os.close(fd)
            if columns:
                sheet.append(columns)
            for record in records:
                sheet.append([_to_cell(record.get(column)) for column in columns])
            for row in sheet.iter_rows():
                for cell in row:
                    _as_text_cell(cell)
            workbook.save(tmp_path)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except IllegalCharacterError as e:
            raise StorageFaultError(
                "Cannot write table file: a value contains control characters "
                "that a workbook cannot hold",
                path=str(self.path),
                operation="write",
            ) from e
        except Exception as e:
            raise StorageFaultError(
                f"Cannot write table file: {e}",
                path=str(self.path),
                operation="write",
            ) from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        logger.debug(f"Wrote {len(records)} records to {self.path.name}")

    def _columns(self, records: List[Record]) -> List[str]:
        """Union of field names in first-seen order, identifier first."""
        columns: Dict[str, None] = {}
        if any(self.id_field in record for record in records):
            columns[self.id_field] = None
        for record in records:
            for key in record:
                columns.setdefault(key, None)
        return list(columns)
