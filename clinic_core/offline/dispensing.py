# =============================================================================
# clinic_core/offline/dispensing.py
# Stock dispensing for medicines and optical items
# =============================================================================

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from clinic_core.services import BaseService, ErrorKind, ServiceResult

from .record_store import DualTierRecordStore

OUT_OF_STOCK = "out_of_stock"

MEDICINE_COPY_FIELDS = {"name": "medicineName", "batchNumber": "batchNumber"}
OPTICAL_COPY_FIELDS = {"type": "opticalType", "brand": "brand", "model": "model"}


class DispensingService(BaseService):
    """
    Decrements an item's stock and appends a dispense record.

    Both steps are ordinary store operations, so each falls back to the local
    workbooks on its own. There is no rollback: if the record cannot be
    written after the stock was decremented, the failure is reported and the
    decrement stays.
    """

    def __init__(
        self,
        items: DualTierRecordStore,
        records: DualTierRecordStore,
        item_key: str,
        copy_fields: Optional[Mapping[str, str]] = None,
        required_status: Optional[str] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            items: Store holding the stock (medicines or opticals)
            records: Store receiving dispense records
            item_key: Field of the dispense record referencing the item
            copy_fields: Item field -> record field copied onto each record
            required_status: Only items with this status may be dispensed
            now: Clock for the dispense timestamp
        """
        super().__init__()
        self.items = items
        self.records = records
        self.item_key = item_key
        self.copy_fields = dict(copy_fields or {})
        self.required_status = required_status
        self._now = now

    def dispense(self, item_id: Any, quantity: Any, **details: Any) -> ServiceResult:
        """
        Dispense ``quantity`` units of ``item_id``.

        Extra keyword arguments (patientId, patientName, price, totalAmount,
        dispensedBy ...) are stored on the dispense record.

        Returns:
            ServiceResult with {"item": updated item, "record": dispense record}
        """
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            return ServiceResult.fail("Quantity must be a whole number", ErrorKind.VALIDATION)
        if quantity <= 0:
            return ServiceResult.fail("Quantity must be positive", ErrorKind.VALIDATION)

        found = self.items.get_result(item_id)
        if not found:
            return found
        item = found.data

        if self.required_status is not None and item.get("status") != self.required_status:
            return ServiceResult.fail(
                f"{self.items.name} record {item_id!r} is not {self.required_status}",
                ErrorKind.VALIDATION,
                metadata={"status": item.get("status")},
            )

        try:
            in_stock = int(float(item.get("quantity", 0) or 0))
        except (TypeError, ValueError):
            return ServiceResult.fail(
                f"{self.items.name} record {item_id!r} has no usable quantity",
                ErrorKind.VALIDATION,
            )
        if in_stock < quantity:
            return ServiceResult.fail(
                f"Not enough stock: {in_stock} available, {quantity} requested",
                ErrorKind.VALIDATION,
                metadata={"available": in_stock, "requested": quantity},
            )

        remaining = in_stock - quantity
        changes: Dict[str, Any] = {"quantity": remaining}
        if remaining == 0:
            changes["status"] = OUT_OF_STOCK
        updated = self.items.patch_result(item_id, changes)
        if not updated:
            return updated

        record: Dict[str, Any] = {self.item_key: item_id, "quantity": quantity}
        for source, target in self.copy_fields.items():
            if source in item:
                record[target] = item[source]
        if self.records.spec.date_field:
            record[self.records.spec.date_field] = self._now().isoformat()
        record.update(details)

        added = self.records.add_result(record)
        if not added:
            self.logger.warning(
                f"Stock of {self.items.name} {item_id} decremented but the dispense "
                f"record was not saved: {added.error}"
            )
            return added

        self.logger.info(f"Dispensed {quantity} x {self.items.name} {item_id} ({remaining} left)")
        return ServiceResult.ok({"item": updated.data, "record": added.data})

    def history_for_patient(self, patient_id: Any) -> ServiceResult:
        return self.records.find_by_result("patientId", patient_id)

    def history_for_item(self, item_id: Any) -> ServiceResult:
        return self.records.find_by_result(self.item_key, item_id)
