# =============================================================================
# tests/integration/test_unified_data_service.py
# Integration Tests for the request channels of UnifiedDataService
# =============================================================================

import pytest

from clinic_core.offline import UnifiedDataService


@pytest.fixture
def service(settings, fixed_today):
    svc = UnifiedDataService(settings=settings, today=fixed_today)
    svc.initialize()
    return svc


@pytest.fixture
def remote_service(settings, fake_supabase, fixed_today):
    return UnifiedDataService(settings=settings, remote_client=fake_supabase, today=fixed_today)


class TestServiceSetup:
    """Test store construction and status"""

    def test_initialize_creates_every_table(self, service, settings):
        status = service.get_status()

        assert status["remote_configured"] is False
        assert all(table["file_exists"] for table in status["tables"].values())
        assert (settings.data_dir / "prescriptions_and_receipts.xlsx").exists()

    def test_generated_channels(self, service):
        for name in ("getLabs", "getTodaysLabs", "addLab", "updateLab", "deleteLab",
                     "searchLabs", "getPatients", "addPatient", "getOpticalItems",
                     "getStaffList", "addStaff", "getMedicines"):
            assert name in service.channels

        # Medicines have no date field
        assert "getTodaysMedicines" not in service.channels

    def test_unknown_channel_returns_none(self, service):
        assert service.handle("dropAllTables") is None

    def test_singleton_reset(self, monkeypatch, settings):
        monkeypatch.setattr("clinic_core.offline.unified_data_service.load_settings", lambda: settings)
        UnifiedDataService.reset_instance()
        try:
            first = UnifiedDataService.get_instance()
            assert UnifiedDataService.get_instance() is first
            UnifiedDataService.reset_instance()
            assert UnifiedDataService.get_instance() is not first
        finally:
            UnifiedDataService.reset_instance()


class TestRecordChannels:
    """Test the generic entity channels"""

    def test_lab_lifecycle(self, service):
        lab = service.handle("addLab", {"PATIENT ID": "P-001", "DATE": "2024-05-01"})
        service.handle("addLab", {"PATIENT ID": "P-002", "DATE": "2024-04-02"})

        assert len(service.handle("getLabs")) == 2
        assert [r["id"] for r in service.handle("getTodaysLabs")] == [lab["id"]]
        assert [r["id"] for r in service.handle("searchLabs", "p-001")] == [lab["id"]]

        updated = service.handle("updateLab", {**lab, "RESULT": "normal"})
        assert updated["RESULT"] == "normal"
        assert service.handle("getLabById", lab["id"])["RESULT"] == "normal"

        assert service.handle("deleteLab", lab["id"]) is True
        assert service.handle("deleteLab", lab["id"]) is False

    def test_update_with_separate_id(self, service):
        staff = service.handle("addStaff", {"username": "asha", "position": "nurse"})

        service.handle("updateStaff", staff["id"], {"username": "asha", "position": "head nurse"})

        assert service.handle("getStaffById", staff["id"])["position"] == "head nurse"

    def test_prescriptions_get_serials(self, service):
        first = service.handle("addPrescription", {"name": "A"})
        second = service.handle("addPrescription", {"name": "B"})

        assert (first["Sno"], second["Sno"]) == (1, 2)

    def test_patient_lookup_by_clinic_number(self, service):
        service.handle("addPatient", {"patientId": "P-001", "name": "John Smith"})
        service.handle("addPatient", {"patientId": "P-002", "name": "Jane Doe"})

        assert service.handle("getPatientById", "P-002")["name"] == "Jane Doe"
        assert service.handle("getPatientById", "P-404") is None
        assert service.handle("getLatestPatientId") == 2

    def test_operations_for_patient(self, service):
        service.handle("saveOperation", {"patientId": "P-001", "dateOfAdmit": "2024-05-01"})
        service.handle("saveOperation", {"patientId": "P-002", "dateOfAdmit": "2024-05-01"})

        assert len(service.handle("getPatientOperations", "P-001")) == 1

    def test_remote_tier_serves_channels(self, remote_service, fake_supabase):
        patient = remote_service.handle("addPatient", {"patientId": "P-001", "name": "A"})

        assert fake_supabase.tables["patients"] == [patient]
        assert remote_service.handle("getPatients") == [patient]


class TestInventoryChannels:
    """Test medicine and optical channels"""

    def test_medicine_status(self, service):
        item = service.handle("addMedicine", {"name": "Timolol", "quantity": 3, "status": "available"})

        service.handle("updateMedicineStatus", item["id"], "discontinued")

        assert [m["id"] for m in service.handle("getMedicinesByStatus", "discontinued")] == [item["id"]]
        assert service.handle("getMedicinesByStatus", "available") == []

    def test_optical_filters(self, service):
        frame = service.handle("addOpticalItem", {"type": "frame", "brand": "Ray-Ban", "model": "RB1", "status": "available"})
        service.handle("addOpticalItem", {"type": "lens", "brand": "Zeiss", "model": "Ray", "status": "available"})

        assert len(service.handle("searchOpticalItems", "ray")) == 2
        assert [o["id"] for o in service.handle("searchOpticalItems", "ray", "frame")] == [frame["id"]]
        assert [o["id"] for o in service.handle("getOpticalItemsByType", "frame")] == [frame["id"]]
        assert len(service.handle("getOpticalItemsByStatus", "available")) == 2
        assert len(service.handle("getOpticalItemsByStatus", "available", "lens")) == 1

    def test_dispense_medicine(self, service):
        item = service.handle("addMedicine", {"name": "Timolol", "quantity": 3})

        updated = service.handle("dispenseMedicine", item["id"], 2, "John Smith", "P-001", 10, 20)

        assert updated["quantity"] == 1
        assert len(service.handle("getMedicineDispenseRecordsByPatient", "P-001")) == 1
        assert len(service.handle("getMedicineDispenseRecordsByMedicine", item["id"])) == 1
        page = service.handle("getMedicineDispenseRecords", 1, 10)
        assert page["totalCount"] == 1
        assert page["data"][0]["totalAmount"] == 20

    def test_dispense_optical(self, service):
        item = service.handle("addOpticalItem", {"type": "frame", "brand": "Ray-Ban", "quantity": 1, "status": "available"})

        updated = service.handle("dispenseOptical", item["id"], 1, "Jane Doe", "P-002", "reception")

        assert updated["status"] == "out_of_stock"
        assert len(service.handle("getOpticalDispenseRecordsByType", "frame")) == 1
        assert len(service.handle("getOpticalDispenseRecordsByOptical", item["id"])) == 1
        assert service.handle("getOpticalDispenseRecordsByPatient", "P-002")[0]["dispensedBy"] == "reception"

    def test_reserved_optical_is_not_dispensed(self, service, mock_streamlit):
        item = service.handle("addOpticalItem", {"type": "frame", "brand": "Ray-Ban", "quantity": 2, "status": "reserved"})

        assert service.handle("dispenseOptical", item["id"], 1, "Jane Doe", "P-002", "reception") is False
        assert service.handle("getOpticalItems")[0]["quantity"] == 2
        assert service.handle("getOpticalDispenseRecordsByPatient", "P-002") == []

    def test_dispense_too_much_returns_false(self, service):
        item = service.handle("addMedicine", {"name": "Timolol", "quantity": 1})

        assert service.handle("dispenseMedicine", item["id"], 5) is False


class TestDropdownChannels:
    """Test dropdown option channels"""

    def test_dropdown_options(self, service):
        added = service.handle("addDropdownOption", "doctorName", "Dr. Rao")

        assert added == {"success": True, "message": "Option added successfully"}
        assert service.handle("getDropdownOptions", "doctorName") == {"success": True, "options": ["Dr. Rao"]}

    def test_invalid_field(self, service):
        result = service.handle("getDropdownOptions", "bogus")

        assert result["success"] is False
        assert "bogus" in result["error"]

    def test_lab_test_options(self, service):
        assert service.handle("addLabTestOption", "CBC") is True
        assert service.handle("addLabTestOption", "cbc") is True
        assert service.handle("getLabTestOptions") == ["CBC"]


class TestFailureBoundary:
    """Nothing raised below the service reaches the caller"""

    def test_wrong_arguments_return_default(self, service):
        assert service.handle("getLabs", "unexpected", "args") == []

    def test_corrupt_table_reads_empty(self, service, settings):
        (settings.data_dir / "labs.xlsx").write_bytes(b"corrupt")

        assert service.handle("getLabs") == []
        assert service.handle("addLab", {"DATE": "2024-05-01"}) is None

    def test_failed_write_notifies_operator(self, settings, mock_streamlit):
        svc = UnifiedDataService(settings=settings, show_user_messages=True)
        svc.initialize()
        (settings.data_dir / "labs.xlsx").write_bytes(b"corrupt")

        assert svc.handle("addLab", {"DATE": "2024-05-01"}) is None
        mock_streamlit.error.assert_called_once()

    def test_failed_read_does_not_notify(self, settings, mock_streamlit):
        svc = UnifiedDataService(settings=settings, show_user_messages=True)
        svc.initialize()
        (settings.data_dir / "labs.xlsx").write_bytes(b"corrupt")

        assert svc.handle("getLabs") == []
        mock_streamlit.error.assert_not_called()
