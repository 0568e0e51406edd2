# =============================================================================
# tests/unit/test_errors.py
# Unit Tests for error handling and logging helpers
# =============================================================================

import logging

import pytest

from clinic_core.errors import ConfigurationError, StorageFaultError, handle_error, notify_failure
from clinic_core.logging import LogContext, setup_logging


class TestExceptions:
    """Test the exception hierarchy"""

    def test_to_dict(self):
        error = StorageFaultError("Cannot write table file", path="labs.xlsx", operation="write")

        assert error.to_dict() == {
            "error_type": "StorageFaultError",
            "code": "STORE_002",
            "message": "Cannot write table file",
            "details": {"path": "labs.xlsx", "operation": "write"},
            "recoverable": True,
        }

    def test_configuration_errors_are_not_recoverable(self):
        assert ConfigurationError("bad").recoverable is False


class TestHandlers:
    """Test the Streamlit-facing handlers"""

    def test_recoverable_error_message(self, mock_streamlit):
        handle_error(StorageFaultError("Cannot read table file"))

        mock_streamlit.error.assert_called_once_with("Error: Cannot read table file")

    def test_critical_error_message(self, mock_streamlit):
        handle_error(ConfigurationError("No data directory"))

        message = mock_streamlit.error.call_args[0][0]
        assert message.startswith("Critical Error: No data directory")

    def test_silent_handling(self, mock_streamlit, caplog):
        with caplog.at_level(logging.ERROR):
            handle_error(ValueError("boom"), show_user_message=False)

        mock_streamlit.error.assert_not_called()
        assert "[UNKNOWN] boom" in caplog.text

    def test_notify_failure(self, mock_streamlit):
        notify_failure("addLab: disk full", "STORAGE_FAULT")

        mock_streamlit.error.assert_called_once_with("Error: addLab: disk full")


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLogging:
    """Test logging setup"""

    def test_setup_logging_writes_file(self, tmp_path, restore_root_logger):
        setup_logging("debug", log_dir=tmp_path, log_filename="clinic.log")
        logging.getLogger("clinic_core.test").debug("hello")

        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello" in (tmp_path / "clinic.log").read_text(encoding="utf-8")
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_log_context_reports_failure(self, caplog):
        logger = logging.getLogger("clinic_core.test")

        with caplog.at_level(logging.DEBUG, logger="clinic_core.test"):
            with pytest.raises(RuntimeError):
                with LogContext(logger, "Rewriting labs.xlsx"):
                    raise RuntimeError("disk full")

        assert "Rewriting labs.xlsx... started" in caplog.text
        assert "Rewriting labs.xlsx... failed" in caplog.text
