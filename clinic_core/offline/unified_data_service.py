# =============================================================================
# clinic_core/offline/unified_data_service.py
# Unified Data Service - single request/response API over all record stores
# =============================================================================
"""
UnifiedDataService - the entry point the UI layer talks to.

The service owns one DualTierRecordStore per entity type, the dropdown option
store and the two dispensing services, and exposes them through named request
channels (``getLabs``, ``addPatient``, ``dispenseMedicine`` ...).

Nothing raised below this layer reaches the caller: every channel returns a
plain value (record, list, bool, dict or None). When ``show_user_messages``
is on, failed writes are also reported to the operator through Streamlit.

Usage:
------
from clinic_core.offline import get_data_service

service = get_data_service()

labs = service.handle("getLabs")
lab = service.handle("addLab", {"PATIENT ID": "P-001", "DATE": "2024-05-01"})
service.handle("deleteLab", lab["id"])

# Typed access when "no data" and "failure" must be told apart
result = service.store("labs").list_result()
"""

from __future__ import annotations
import copy
import threading
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional

from clinic_core.config import AppSettings, load_settings
from clinic_core.data import SearchCriteria
from clinic_core.errors import StorageFaultError, handle_error, notify_failure
from clinic_core.logging import get_logger
from clinic_core.services import ServiceResult

from .dispensing import (
    MEDICINE_COPY_FIELDS,
    OPTICAL_COPY_FIELDS,
    DispensingService,
)
from .dropdown_options import OPTIONS_FILE_NAME, DropdownOptionsStore
from .entities import ENTITY_SPECS, EntitySpec
from .record_store import DualTierRecordStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class Channel:
    """
    One request channel.

    Attributes:
        call: Produces a ServiceResult from the request arguments
        default: Value returned when the call fails
        write: Whether a failure should be surfaced to the operator
        transform: Maps the successful payload to the returned value
        on_failure: Builds the failure value from the failed result instead of ``default``
    """
    call: Callable[..., ServiceResult]
    default: Any = None
    write: bool = False
    transform: Optional[Callable[[Any], Any]] = None
    on_failure: Optional[Callable[[ServiceResult], Any]] = None


def _first_or_none(records: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return records[0] if records else None


class UnifiedDataService:
    """
    Request/response facade over the clinic record stores.

    Stores are built once from the settings; the remote tier is tried first
    for every table whose settings carry both Supabase options.
    """

    _instance: Optional[UnifiedDataService] = None
    _lock = threading.Lock()

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        remote_client: Any = None,
        show_user_messages: bool = False,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize the unified data service.

        Args:
            settings: Application settings (loaded from secrets/env when None)
            remote_client: Supabase client shared by every store (tests, custom setups)
            show_user_messages: Whether failed writes are shown via Streamlit
            today: Clock used for "today" channels
        """
        self.settings = settings or load_settings()
        self.show_user_messages = show_user_messages

        self._stores: Dict[str, DualTierRecordStore] = {
            name: DualTierRecordStore(
                spec,
                self.settings.store_config(spec.file_name),
                remote_client=remote_client,
                today=today,
            )
            for name, spec in ENTITY_SPECS.items()
        }
        self.options = DropdownOptionsStore(
            self.settings.store_config(OPTIONS_FILE_NAME),
            remote_client=remote_client,
        )
        self.medicine_dispensing = DispensingService(
            self._stores["medicines"],
            self._stores["medicine_dispense_records"],
            item_key="medicineId",
            copy_fields=MEDICINE_COPY_FIELDS,
        )
        self.optical_dispensing = DispensingService(
            self._stores["opticals"],
            self._stores["optical_dispense_records"],
            item_key="opticalId",
            copy_fields=OPTICAL_COPY_FIELDS,
            required_status="available",
        )
        self._channels: Dict[str, Channel] = {}
        self._register_channels()

    @classmethod
    def get_instance(cls) -> UnifiedDataService:
        """Get or create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = UnifiedDataService()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the singleton (settings changed, tests)."""
        with cls._lock:
            cls._instance = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def remote_configured(self) -> bool:
        return self.settings.remote_configured

    @property
    def channels(self) -> List[str]:
        """Names of every registered request channel."""
        return sorted(self._channels)

    def store(self, name: str) -> DualTierRecordStore:
        """Record store for an entity type."""
        return self._stores[name]

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    def initialize(self) -> List[str]:
        """
        Create every missing table workbook.

        Returns:
            Names of the tables whose workbook could not be created
        """
        failed = []
        for name, store in self._stores.items():
            try:
                store.table.ensure_exists()
            except StorageFaultError as e:
                logger.error(f"Could not create table file for {name}: {e}")
                failed.append(name)
        logger.info(
            f"UnifiedDataService initialized. Remote: {self.remote_configured}, "
            f"data dir: {self.settings.data_dir}"
        )
        return failed

    # =========================================================================
    # CHANNEL REGISTRY
    # =========================================================================

    def _register(self, name: str, channel: Channel) -> None:
        self._channels[name] = channel

    def _register_entity(self, spec: EntitySpec) -> None:
        store = self._stores[spec.name]
        plural, singular = spec.channel_plural, spec.channel_singular

        def update(record_id: Any, record: Optional[Mapping[str, Any]] = None) -> ServiceResult:
            # updateLab sends the whole record with its id embedded
            if record is None and isinstance(record_id, Mapping):
                record = record_id
                record_id = record.get(spec.id_field)
            return store.update_result(record_id, record)

        self._register(f"get{plural}", Channel(store.list_result, default=[]))
        if spec.date_field:
            self._register(f"getTodays{plural}", Channel(store.get_today_result, default=[]))
        self._register(f"add{singular}", Channel(store.add_result, write=True))
        self._register(f"update{singular}", Channel(update, write=True))
        self._register(
            f"delete{singular}",
            Channel(store.delete_result, default=False, write=True),
        )
        self._register(f"search{plural}", Channel(store.search_result, default=[]))
        self._register(f"get{singular}ById", Channel(store.get_result))

    def _register_channels(self) -> None:
        for spec in ENTITY_SPECS.values():
            self._register_entity(spec)

        patients = self._stores["patients"]
        operations = self._stores["operations"]
        medicines = self._stores["medicines"]
        opticals = self._stores["opticals"]
        medicine_records = self._stores["medicine_dispense_records"]
        optical_records = self._stores["optical_dispense_records"]

        # Patients are looked up by their clinic number, not the row id
        self._register(
            "getPatientById",
            Channel(
                lambda patient_id: patients.find_by_result("patientId", patient_id),
                transform=_first_or_none,
            ),
        )
        self._register("getLatestPatientId", Channel(patients.count_result, default=0))

        self._register(
            "getPatientOperations",
            Channel(lambda patient_id: operations.find_by_result("patientId", patient_id), default=[]),
        )
        self._register("saveOperation", Channel(operations.add_result, write=True))

        self._register(
            "updateMedicineStatus",
            Channel(lambda item_id, status: medicines.patch_result(item_id, {"status": status}), write=True),
        )
        self._register(
            "getMedicinesByStatus",
            Channel(lambda status: medicines.find_by_result("status", status), default=[]),
        )

        def search_opticals(term: Optional[str] = None, item_type: Optional[str] = None) -> ServiceResult:
            equals = {"type": item_type} if item_type else {}
            return opticals.search_result(SearchCriteria(term=term, equals=equals))

        def opticals_by_status(status: str, item_type: Optional[str] = None) -> ServiceResult:
            equals = {"status": status}
            if item_type:
                equals["type"] = item_type
            return opticals.search_result(SearchCriteria(equals=equals))

        self._register("searchOpticalItems", Channel(search_opticals, default=[]))
        self._register(
            "updateOpticalItemStatus",
            Channel(lambda item_id, status: opticals.patch_result(item_id, {"status": status}), write=True),
        )
        self._register("getOpticalItemsByStatus", Channel(opticals_by_status, default=[]))
        self._register(
            "getOpticalItemsByType",
            Channel(lambda item_type: opticals.find_by_result("type", item_type), default=[]),
        )

        # Dispensing
        def dispense_medicine(
            item_id: Any,
            quantity: Any,
            dispensed_by: Optional[str] = None,
            patient_id: Optional[str] = None,
            price: Any = None,
            total_amount: Any = None,
        ) -> ServiceResult:
            return self.medicine_dispensing.dispense(
                item_id,
                quantity,
                patientName=dispensed_by,
                patientId=patient_id or "",
                price=price,
                totalAmount=total_amount,
            )

        def dispense_optical(
            item_id: Any,
            quantity: Any,
            patient_name: Optional[str] = None,
            patient_id: Optional[str] = None,
            dispensed_by: Optional[str] = None,
        ) -> ServiceResult:
            return self.optical_dispensing.dispense(
                item_id,
                quantity,
                patientName=patient_name,
                patientId=patient_id or "",
                dispensedBy=dispensed_by,
            )

        def take_item(data: Dict[str, Any]) -> Dict[str, Any]:
            return data["item"]

        self._register(
            "dispenseMedicine",
            Channel(dispense_medicine, default=False, write=True, transform=take_item),
        )
        self._register(
            "dispenseOptical",
            Channel(dispense_optical, default=False, write=True, transform=take_item),
        )
        self._register(
            "getMedicineDispenseRecords",
            Channel(medicine_records.list_page_result, default=False),
        )
        self._register(
            "getMedicineDispenseRecordsByPatient",
            Channel(self.medicine_dispensing.history_for_patient, default=[]),
        )
        self._register(
            "getMedicineDispenseRecordsByMedicine",
            Channel(self.medicine_dispensing.history_for_item, default=[]),
        )
        self._register(
            "getOpticalDispenseRecords",
            Channel(optical_records.list_page_result, default=False),
        )
        self._register(
            "getOpticalDispenseRecordsByPatient",
            Channel(self.optical_dispensing.history_for_patient, default=[]),
        )
        self._register(
            "getOpticalDispenseRecordsByOptical",
            Channel(self.optical_dispensing.history_for_item, default=[]),
        )
        self._register(
            "getOpticalDispenseRecordsByType",
            Channel(lambda item_type: optical_records.find_by_result("opticalType", item_type), default=[]),
        )

        # Dropdown options
        def failure_dict(result: ServiceResult) -> Dict[str, Any]:
            return {"success": False, "error": result.error}

        self._register(
            "getDropdownOptions",
            Channel(
                self.options.get_options,
                transform=lambda values: {"success": True, "options": values},
                on_failure=failure_dict,
            ),
        )
        self._register(
            "addDropdownOption",
            Channel(
                self._add_option_with_message,
                write=True,
                transform=lambda message: {"success": True, "message": message},
                on_failure=failure_dict,
            ),
        )
        self._register(
            "getLabTestOptions",
            Channel(lambda: self.options.get_options("labTestOptions"), default=[]),
        )
        self._register(
            "addLabTestOption",
            Channel(
                lambda value: self.options.add_option("labTestOptions", value),
                default=False,
                write=True,
                transform=lambda added: True,
            ),
        )

    def _add_option_with_message(self, field_name: str, value: Optional[str]) -> ServiceResult:
        result = self.options.add_option(field_name, value)
        if result:
            result.data = (result.metadata or {}).get("message")
        return result

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _failure_value(self, channel: Channel, result: Optional[ServiceResult]) -> Any:
        if channel.on_failure is not None and result is not None:
            return channel.on_failure(result)
        if channel.on_failure is not None:
            return channel.on_failure(ServiceResult.fail("Request failed"))
        return copy.copy(channel.default)

    def handle(self, channel_name: str, *args: Any, **kwargs: Any) -> Any:
        """
        Serve one request.

        Args:
            channel_name: Request channel, e.g. "getLabs" or "addPatient"
            *args, **kwargs: Channel arguments

        Returns:
            The channel's value; its failure value when anything goes wrong
        """
        channel = self._channels.get(channel_name)
        if channel is None:
            logger.warning(f"Unknown request channel: {channel_name}")
            return None

        try:
            result = channel.call(*args, **kwargs)
        except Exception as e:
            handle_error(
                e,
                show_user_message=self.show_user_messages and channel.write,
                user_message=f"{channel_name} failed: {e}",
            )
            return self._failure_value(channel, None)

        if not result:
            if channel.write and self.show_user_messages:
                notify_failure(f"{channel_name}: {result.error}", result.error_code)
            else:
                logger.debug(f"{channel_name} failed: [{result.error_code}] {result.error}")
            return self._failure_value(channel, result)

        if channel.transform is not None:
            return channel.transform(result.data)
        return result.data

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        """
        Status information for UI display.

        Returns:
            Dict with settings summary and per-table tier/file details
        """
        return {
            "settings": self.settings.to_dict(),
            "remote_configured": self.remote_configured,
            "tables": {
                name: {
                    "remote_enabled": store.remote_enabled,
                    "file": str(store.table.path),
                    "file_exists": store.table.exists(),
                }
                for name, store in self._stores.items()
            },
        }


def get_data_service() -> UnifiedDataService:
    """
    Get the global UnifiedDataService instance.

    Returns:
        UnifiedDataService singleton

    Usage:
        from clinic_core.offline import get_data_service

        service = get_data_service()
        patients = service.handle("getPatients")
    """
    return UnifiedDataService.get_instance()
