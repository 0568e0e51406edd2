# =============================================================================
# tests/unit/test_dispensing.py
# Unit Tests for DispensingService
# =============================================================================

from datetime import datetime

import pytest

from clinic_core.offline.dispensing import (
    MEDICINE_COPY_FIELDS,
    OPTICAL_COPY_FIELDS,
    OUT_OF_STOCK,
    DispensingService,
)
from clinic_core.offline.entities import (
    MEDICINE_DISPENSE_RECORDS,
    MEDICINES,
    OPTICAL_DISPENSE_RECORDS,
    OPTICALS,
)
from clinic_core.services import ErrorKind


@pytest.fixture
def stores(make_store):
    return make_store(MEDICINES), make_store(MEDICINE_DISPENSE_RECORDS)


@pytest.fixture
def service(stores):
    medicines, records = stores
    return DispensingService(
        medicines,
        records,
        item_key="medicineId",
        copy_fields=MEDICINE_COPY_FIELDS,
        now=lambda: datetime(2024, 5, 1, 10, 30),
    )


@pytest.fixture
def paracetamol(stores):
    medicines, _ = stores
    return medicines.add({"name": "Paracetamol", "batchNumber": "B-12", "quantity": 5, "status": "available"})


class TestDispense:
    """Test stock decrement and dispense records"""

    def test_dispense_decrements_and_records(self, service, stores, paracetamol):
        medicines, records = stores

        result = service.dispense(paracetamol["id"], 2, patientId="P-001", patientName="John Smith")

        assert result.success
        assert result.data["item"]["quantity"] == 3
        assert medicines.get(paracetamol["id"])["quantity"] == 3

        record = records.list()[0]
        assert record["medicineId"] == paracetamol["id"]
        assert record["medicineName"] == "Paracetamol"
        assert record["batchNumber"] == "B-12"
        assert record["quantity"] == 2
        assert record["patientId"] == "P-001"
        assert record["dispensedDate"] == "2024-05-01T10:30:00"

    def test_last_units_mark_out_of_stock(self, service, stores, paracetamol):
        medicines, _ = stores

        service.dispense(paracetamol["id"], 5)

        item = medicines.get(paracetamol["id"])
        assert item["quantity"] == 0
        assert item["status"] == OUT_OF_STOCK

    def test_insufficient_stock_changes_nothing(self, service, stores, paracetamol):
        medicines, records = stores

        result = service.dispense(paracetamol["id"], 6)

        assert result.error_code == ErrorKind.VALIDATION
        assert result.metadata == {"available": 5, "requested": 6}
        assert medicines.get(paracetamol["id"])["quantity"] == 5
        assert records.list() == []

    @pytest.mark.parametrize("quantity", [0, -1, "two", None])
    def test_invalid_quantity(self, service, paracetamol, quantity):
        assert service.dispense(paracetamol["id"], quantity).error_code == ErrorKind.VALIDATION

    def test_unknown_item(self, service):
        assert service.dispense("missing", 1).error_code == ErrorKind.NOT_FOUND


class TestRequiredStatus:
    """Test items that may only be dispensed in a given status"""

    @pytest.fixture
    def opticals(self, make_store):
        return make_store(OPTICALS), make_store(OPTICAL_DISPENSE_RECORDS)

    @pytest.fixture
    def optical_service(self, opticals):
        items, records = opticals
        return DispensingService(
            items,
            records,
            item_key="opticalId",
            copy_fields=OPTICAL_COPY_FIELDS,
            required_status="available",
        )

    @pytest.mark.parametrize("status", ["reserved", "out_of_stock", None])
    def test_other_status_is_rejected(self, optical_service, opticals, status):
        items, records = opticals
        fields = {"type": "frame", "brand": "Ray-Ban", "quantity": 3}
        if status is not None:
            fields["status"] = status
        frame = items.add(fields)

        result = optical_service.dispense(frame["id"], 1)

        assert result.error_code == ErrorKind.VALIDATION
        assert items.get(frame["id"])["quantity"] == 3
        assert records.list() == []

    def test_available_item_is_dispensed(self, optical_service, opticals):
        items, records = opticals
        frame = items.add({"type": "frame", "brand": "Ray-Ban", "quantity": 3, "status": "available"})

        result = optical_service.dispense(frame["id"], 1, patientId="P-002")

        assert result.success
        assert items.get(frame["id"])["quantity"] == 2
        assert records.list()[0]["opticalType"] == "frame"

    def test_status_is_ignored_without_requirement(self, service, stores):
        medicines, _ = stores
        item = medicines.add({"name": "Timolol", "quantity": 2, "status": "discontinued"})

        assert service.dispense(item["id"], 1).success


class TestDispenseHistory:
    """Test history lookups"""

    def test_history_by_patient_and_item(self, service, stores, paracetamol):
        medicines, _ = stores
        other = medicines.add({"name": "Ibuprofen", "quantity": 10})

        service.dispense(paracetamol["id"], 1, patientId="P-001")
        service.dispense(other["id"], 1, patientId="P-001")
        service.dispense(other["id"], 1, patientId="P-002")

        assert len(service.history_for_patient("P-001").data) == 2
        assert len(service.history_for_item(other["id"]).data) == 2
