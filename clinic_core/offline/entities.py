# =============================================================================
# clinic_core/offline/entities.py
# Per-entity table configuration
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class EntitySpec:
    """
    Static description of one entity type.

    Attributes:
        name: Entity-type name, also the default remote table name
        file_name: Workbook holding the local table
        sheet_name: Sheet inside the workbook
        remote_table: Supabase table name
        date_field: Field compared against today's date and used for ordering
        search_fields: Fields a free-text search term is matched against
        serial_field: Field receiving a running number on insert
        channel_singular: Request-channel suffix for one record ("Lab")
        channel_plural: Request-channel suffix for many records ("Labs")
    """
    name: str
    file_name: str
    sheet_name: str
    remote_table: str
    date_field: Optional[str] = None
    search_fields: Tuple[str, ...] = ()
    serial_field: Optional[str] = None
    channel_singular: str = ""
    channel_plural: str = ""
    id_field: str = "id"


LABS = EntitySpec(
    name="labs",
    file_name="labs.xlsx",
    sheet_name="Labs",
    remote_table="labs",
    date_field="DATE",
    search_fields=("PATIENT ID",),
    channel_singular="Lab",
    channel_plural="Labs",
)

PATIENTS = EntitySpec(
    name="patients",
    file_name="patients.xlsx",
    sheet_name="Patients",
    remote_table="patients",
    date_field="date",
    search_fields=("patientId", "name", "phone"),
    channel_singular="Patient",
    channel_plural="Patients",
)

PRESCRIPTIONS = EntitySpec(
    name="prescriptions",
    file_name="prescriptions_and_receipts.xlsx",
    sheet_name="Prescriptions",
    remote_table="prescriptions",
    date_field="DATE",
    search_fields=("patientId", "name", "phone", "guardian"),
    serial_field="Sno",
    channel_singular="Prescription",
    channel_plural="Prescriptions",
)

OPERATIONS = EntitySpec(
    name="operations",
    file_name="operations.xlsx",
    sheet_name="Operations",
    remote_table="operations",
    date_field="dateOfAdmit",
    search_fields=("patientId", "patientName"),
    channel_singular="Operation",
    channel_plural="Operations",
)

MEDICINES = EntitySpec(
    name="medicines",
    file_name="medicines.xlsx",
    sheet_name="Medicines",
    remote_table="medicines",
    search_fields=("name",),
    channel_singular="Medicine",
    channel_plural="Medicines",
)

OPTICALS = EntitySpec(
    name="opticals",
    file_name="opticals.xlsx",
    sheet_name="Opticals",
    remote_table="opticals",
    search_fields=("brand", "model"),
    channel_singular="OpticalItem",
    channel_plural="OpticalItems",
)

STAFF = EntitySpec(
    name="staff",
    file_name="staff.xlsx",
    sheet_name="Staff",
    remote_table="staff",
    date_field="createdAt",
    search_fields=("username", "fullName", "position"),
    channel_singular="Staff",
    channel_plural="StaffList",
)

MEDICINE_DISPENSE_RECORDS = EntitySpec(
    name="medicine_dispense_records",
    file_name="medicine_dispense_records.xlsx",
    sheet_name="MedicineDispenseRecords",
    remote_table="medicine_dispense_records",
    date_field="dispensedDate",
    search_fields=("patientName", "medicineName", "patientId"),
    channel_singular="MedicineDispenseRecord",
    channel_plural="MedicineDispenseRecords",
)

OPTICAL_DISPENSE_RECORDS = EntitySpec(
    name="optical_dispense_records",
    file_name="optical_dispense_records.xlsx",
    sheet_name="OpticalDispenseRecords",
    remote_table="optical_dispense_records",
    date_field="dispensedAt",
    search_fields=("patientName", "brand", "model", "patientId"),
    channel_singular="OpticalDispenseRecord",
    channel_plural="OpticalDispenseRecords",
)

ENTITY_SPECS: Dict[str, EntitySpec] = {
    spec.name: spec
    for spec in (
        LABS,
        PATIENTS,
        PRESCRIPTIONS,
        OPERATIONS,
        MEDICINES,
        OPTICALS,
        STAFF,
        MEDICINE_DISPENSE_RECORDS,
        OPTICAL_DISPENSE_RECORDS,
    )
}


def get_entity_spec(name: str) -> EntitySpec:
    """Look up an entity spec by name, raising KeyError for unknown entities."""
    try:
        return ENTITY_SPECS[name]
    except KeyError:
        raise KeyError(f"Unknown entity type: {name!r}") from None
