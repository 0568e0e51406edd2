# =============================================================================
# clinic_core/offline/record_store.py
# Dual-Tier Record Store - Supabase first, Excel workbook fallback
# =============================================================================
"""
DualTierRecordStore - one store per entity type.

Every operation runs the same two-step sequence:

1. If a Supabase client is available, run the operation remotely. A reply
   without error is authoritative and returned as is.
2. If the remote tier is unconfigured or the call raises
   TierUnavailableError, run the operation against the local workbook, which
   holds the full table and is rewritten in its entirety on every mutation.

The two tiers are never combined within one call. Each operation exists in two
flavours:

- ``*_result`` methods return a ServiceResult, so "nothing found" and
  "storage failed" stay distinguishable (error_code NOT_FOUND / STORAGE_FAULT /
  VALIDATION, ``metadata["tier"]`` names the tier that answered).
- the plain methods (``list``, ``add``, ``delete`` ...) keep the historical
  contract of the desktop app: empty list / None / False on failure.

Ordering: remote reads are ordered by the entity's date field, newest first;
file reads keep workbook (insertion) order.

There is no locking: two concurrent writers against the same workbook each
rewrite the whole file and the last one wins.
"""

from __future__ import annotations
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from clinic_core.config import StoreConfig
from clinic_core.data import ExcelTable, RemoteTable, SearchCriteria, client_for
from clinic_core.errors import StorageFaultError, TierUnavailableError
from clinic_core.services import BaseService, ErrorKind, ServiceResult

from .entities import EntitySpec

Record = Dict[str, Any]
Criteria = Union[SearchCriteria, str, None]

REMOTE = "remote"
FILE = "file"


def new_record_id() -> str:
    """Store-assigned identifier for a new record."""
    return str(uuid.uuid4())


def next_serial(values: List[Any]) -> int:
    """One past the largest numeric value in ``values`` (1 when there is none)."""
    numbers = []
    for value in values:
        try:
            numbers.append(int(float(str(value).strip())))
        except (TypeError, ValueError):
            continue
    return max(numbers) + 1 if numbers else 1


class TieredStore(BaseService):
    """
    Remote-then-file dispatch shared by every store.

    Subclasses set ``self.remote`` (a RemoteTable) and ``self.local_path``.
    """

    name: str = ""

    def __init__(self, remote: RemoteTable, local_path: Path):
        super().__init__()
        self.remote = remote
        self.local_path = Path(local_path)

    @property
    def remote_enabled(self) -> bool:
        """Whether the remote tier is attempted first."""
        return self.remote.is_connected()

    def _dispatch(
        self,
        operation: str,
        remote_call: Callable[[], ServiceResult],
        file_call: Callable[[], ServiceResult],
    ) -> ServiceResult:
        """Run ``remote_call``; on TierUnavailableError run ``file_call`` instead."""
        if self.remote_enabled:
            try:
                result = remote_call()
                return self._tagged(result, REMOTE)
            except TierUnavailableError as e:
                self.logger.info(
                    f"{self.name}.{operation}: remote tier unavailable, "
                    f"falling back to {self.local_path.name} ({e.message})"
                )

        try:
            result = file_call()
        except StorageFaultError as e:
            self.logger.error(f"{self.name}.{operation} failed: {e}")
            return ServiceResult.fail(
                e.message,
                ErrorKind.STORAGE_FAULT,
                metadata={"tier": FILE, "table": self.name, **e.details},
            )
        except Exception as e:
            self.logger.error(f"{self.name}.{operation} failed unexpectedly: {e}", exc_info=True)
            return ServiceResult.fail(
                str(e),
                ErrorKind.UNKNOWN,
                metadata={"tier": FILE, "table": self.name},
            )
        return self._tagged(result, FILE)

    def _tagged(self, result: ServiceResult, tier: str) -> ServiceResult:
        metadata = dict(result.metadata or {})
        metadata.setdefault("tier", tier)
        metadata.setdefault("table", self.name)
        result.metadata = metadata
        return result

    def _invalid(self, message: str) -> ServiceResult:
        return ServiceResult.fail(message, ErrorKind.VALIDATION, metadata={"table": self.name})


class DualTierRecordStore(TieredStore):
    """
    Generic record store for one entity type.

    Usage:
        store = DualTierRecordStore(LABS, settings.store_config(LABS.file_name))
        lab = store.add({"PATIENT ID": "P-001", "DATE": "2024-05-01"})
        store.update(lab["id"], {**lab, "RESULT": "normal"})
        store.search("P-001")
    """

    def __init__(
        self,
        spec: EntitySpec,
        config: StoreConfig,
        remote_client: Any = None,
        today: Callable[[], date] = date.today,
    ):
        """
        Args:
            spec: Entity configuration (table names, date/search fields)
            config: Store configuration (workbook path, remote credentials)
            remote_client: Supabase client to use instead of building one from config
            today: Clock used by ``get_today``
        """
        client = remote_client if remote_client is not None else client_for(config)
        super().__init__(
            RemoteTable(client, spec.remote_table, spec.id_field),
            config.local_file_path,
        )
        self.spec = spec
        self.name = spec.name
        self.config = config
        self.table = ExcelTable(config.local_file_path, spec.sheet_name, spec.id_field)
        self._today = today

    def __repr__(self) -> str:
        return (
            f"DualTierRecordStore({self.spec.name!r}, remote={self.remote_enabled}, "
            f"file={str(self.table.path)!r})"
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _not_found(self, record_id: Any) -> ServiceResult:
        return ServiceResult.fail(
            f"{self.name} record {record_id!r} not found",
            ErrorKind.NOT_FOUND,
            metadata={"record_id": record_id},
        )

    def _same_id(self, record: Mapping[str, Any], record_id: Any) -> bool:
        value = record.get(self.spec.id_field)
        return value is not None and str(value) == str(record_id)

    def _index_of(self, records: List[Record], record_id: Any) -> Optional[int]:
        for index, record in enumerate(records):
            if self._same_id(record, record_id):
                return index
        return None

    def _rewrite(self, records: List[Record]) -> None:
        with self.log_operation(f"Rewriting {self.table.path.name}"):
            self.table.write(records)

    def _criteria(self, criteria: Criteria) -> SearchCriteria:
        if criteria is None:
            criteria = SearchCriteria()
        elif isinstance(criteria, str):
            criteria = SearchCriteria.text(criteria)
        return criteria.with_default_fields(self.spec.search_fields)

    # =========================================================================
    # TYPED OPERATIONS
    # =========================================================================

    def list_result(self) -> ServiceResult:
        """All records of the table."""
        return self._dispatch(
            "list",
            lambda: ServiceResult.ok(
                self.remote.fetch_all(order_by=self.spec.date_field, desc=True)
            ),
            lambda: ServiceResult.ok(self.table.read()),
        )

    def get_today_result(self) -> ServiceResult:
        """Records whose date field equals today's date as a YYYY-MM-DD string."""
        date_field = self.spec.date_field
        if not date_field:
            return self._invalid(f"{self.name} has no date field")

        today = self._today().isoformat()

        def from_file() -> ServiceResult:
            return ServiceResult.ok(
                [record for record in self.table.read() if record.get(date_field) == today]
            )

        return self._dispatch(
            "get_today",
            lambda: ServiceResult.ok(self.remote.fetch_eq(date_field, today)),
            from_file,
        )

    def get_result(self, record_id: Any) -> ServiceResult:
        """One record by identifier."""
        def from_remote() -> ServiceResult:
            rows = self.remote.fetch_eq(self.spec.id_field, record_id)
            return ServiceResult.ok(rows[0]) if rows else self._not_found(record_id)

        def from_file() -> ServiceResult:
            for record in self.table.read():
                if self._same_id(record, record_id):
                    return ServiceResult.ok(record)
            return self._not_found(record_id)

        return self._dispatch("get", from_remote, from_file)

    def add_result(self, record: Mapping[str, Any]) -> ServiceResult:
        """
        Insert a record under a newly generated identifier.

        Any identifier in ``record`` is replaced. When the entity has a serial
        field it is filled with the next running number of the tier doing the
        insert, unless the caller supplied one.
        """
        if not isinstance(record, Mapping):
            return self._invalid("record must be a mapping")

        new_record: Record = {**record, self.spec.id_field: new_record_id()}
        serial_field = self.spec.serial_field
        needs_serial = bool(serial_field) and new_record.get(serial_field) in (None, "")

        def into_remote() -> ServiceResult:
            payload = dict(new_record)
            if needs_serial:
                payload[serial_field] = next_serial([self.remote.max_value(serial_field)])
            stored = self.remote.insert(payload)
            self.logger.info(f"{self.name}: record {payload[self.spec.id_field]} added to Supabase")
            return ServiceResult.ok(stored)

        def into_file() -> ServiceResult:
            records = self.table.read()
            payload = dict(new_record)
            if needs_serial:
                payload[serial_field] = next_serial([r.get(serial_field) for r in records])
            records.append(payload)
            self._rewrite(records)
            self.logger.info(
                f"{self.name}: record {payload[self.spec.id_field]} added to {self.table.path.name}"
            )
            return ServiceResult.ok(payload)

        return self._dispatch("add", into_remote, into_file)

    def update_result(self, record_id: Any, record: Mapping[str, Any]) -> ServiceResult:
        """
        Replace the record with ``record_id`` by ``record``.

        Both tiers report NOT_FOUND when no record carries ``record_id``.
        """
        if not isinstance(record, Mapping):
            return self._invalid("record must be a mapping")

        replacement: Record = {**record, self.spec.id_field: record_id}

        def in_remote() -> ServiceResult:
            row = self.remote.update_by_id(record_id, replacement)
            return ServiceResult.ok(row) if row is not None else self._not_found(record_id)

        def in_file() -> ServiceResult:
            records = self.table.read()
            index = self._index_of(records, record_id)
            if index is None:
                return self._not_found(record_id)
            records[index] = replacement
            self._rewrite(records)
            self.logger.info(f"{self.name}: record {record_id} updated in {self.table.path.name}")
            return ServiceResult.ok(replacement)

        return self._dispatch("update", in_remote, in_file)

    def patch_result(self, record_id: Any, fields: Mapping[str, Any]) -> ServiceResult:
        """Merge ``fields`` into the record with ``record_id``."""
        if not isinstance(fields, Mapping):
            return self._invalid("fields must be a mapping")

        changes: Record = {k: v for k, v in fields.items() if k != self.spec.id_field}

        def in_remote() -> ServiceResult:
            row = self.remote.update_by_id(record_id, changes)
            return ServiceResult.ok(row) if row is not None else self._not_found(record_id)

        def in_file() -> ServiceResult:
            records = self.table.read()
            index = self._index_of(records, record_id)
            if index is None:
                return self._not_found(record_id)
            records[index] = {**records[index], **changes}
            self._rewrite(records)
            return ServiceResult.ok(records[index])

        return self._dispatch("patch", in_remote, in_file)

    def delete_result(self, record_id: Any) -> ServiceResult:
        """Remove the record with ``record_id``."""
        def in_remote() -> ServiceResult:
            if not self.remote.delete_by_id(record_id):
                return self._not_found(record_id)
            return ServiceResult.ok(True)

        def in_file() -> ServiceResult:
            records = self.table.read()
            remaining = [record for record in records if not self._same_id(record, record_id)]
            if len(remaining) == len(records):
                return self._not_found(record_id)
            self._rewrite(remaining)
            self.logger.info(f"{self.name}: record {record_id} deleted from {self.table.path.name}")
            return ServiceResult.ok(True)

        return self._dispatch("delete", in_remote, in_file)

    def search_result(self, criteria: Criteria = None) -> ServiceResult:
        """
        Records matching ``criteria``.

        A plain string is a free-text term over the entity's search fields.
        """
        criteria = self._criteria(criteria)

        def from_file() -> ServiceResult:
            return ServiceResult.ok([r for r in self.table.read() if criteria.matches(r)])

        return self._dispatch(
            "search",
            lambda: ServiceResult.ok(
                self.remote.search(criteria, order_by=self.spec.date_field, desc=True)
            ),
            from_file,
        )

    def find_by_result(self, field: str, value: Any) -> ServiceResult:
        """Records whose ``field`` equals ``value``."""
        return self.search_result(SearchCriteria.where(**{field: value}))

    def count_result(self) -> ServiceResult:
        """Number of records in the table."""
        return self._dispatch(
            "count",
            lambda: ServiceResult.ok(self.remote.count()),
            lambda: ServiceResult.ok(len(self.table.read())),
        )

    def list_page_result(self, page: int = 1, page_size: int = 10) -> ServiceResult:
        """One page of records plus the total count (pages start at 1)."""
        if page < 1 or page_size < 1:
            return self._invalid("page and page_size must be positive")

        offset = (page - 1) * page_size

        def page_of(data: List[Record], total: int) -> Dict[str, Any]:
            return {"data": data, "totalCount": total, "page": page, "pageSize": page_size}

        def from_remote() -> ServiceResult:
            total = self.remote.count()
            data = self.remote.fetch_page(
                offset, page_size, order_by=self.spec.date_field, desc=True
            )
            return ServiceResult.ok(page_of(data, total))

        def from_file() -> ServiceResult:
            records = self.table.read()
            return ServiceResult.ok(page_of(records[offset:offset + page_size], len(records)))

        return self._dispatch("list_page", from_remote, from_file)

    # =========================================================================
    # COMPATIBILITY OPERATIONS (empty/None/False on failure)
    # =========================================================================

    def list(self) -> List[Record]:
        return self.list_result().value_or([])

    def get_today(self) -> List[Record]:
        return self.get_today_result().value_or([])

    def get(self, record_id: Any) -> Optional[Record]:
        return self.get_result(record_id).value_or(None)

    def add(self, record: Mapping[str, Any]) -> Optional[Record]:
        return self.add_result(record).value_or(None)

    def update(self, record_id: Any, record: Mapping[str, Any]) -> Optional[Record]:
        return self.update_result(record_id, record).value_or(None)

    def patch(self, record_id: Any, fields: Mapping[str, Any]) -> Optional[Record]:
        return self.patch_result(record_id, fields).value_or(None)

    def delete(self, record_id: Any) -> bool:
        return self.delete_result(record_id).success

    def search(self, criteria: Criteria = None) -> List[Record]:
        return self.search_result(criteria).value_or([])

    def find_by(self, field: str, value: Any) -> List[Record]:
        return self.find_by_result(field, value).value_or([])

    def count(self) -> int:
        return self.count_result().value_or(0)

    def list_page(self, page: int = 1, page_size: int = 10) -> Dict[str, Any]:
        empty = {"data": [], "totalCount": 0, "page": page, "pageSize": page_size}
        return self.list_page_result(page, page_size).value_or(empty)
