# =============================================================================
# clinic_core/errors/handlers.py
# Error Handling Utilities for the Clinic Record Store
# =============================================================================

from __future__ import annotations
import traceback
from typing import Optional
import streamlit as st

from clinic_core.logging import get_logger
from .exceptions import ClinicStoreError

logger = get_logger(__name__)


def handle_error(
    error: Exception,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        show_user_message: Whether to display error to user via st.error
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    if isinstance(error, ClinicStoreError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=not isinstance(error, ClinicStoreError),
        )

    if show_user_message:
        if recoverable:
            st.error(f"Error: {message}")
        else:
            st.error(f"Critical Error: {message}. Please contact support.")


def notify_failure(message: str, code: Optional[str] = None) -> None:
    """Show a failed write to the operator without raising."""
    logger.warning(f"[{code or 'UNKNOWN'}] {message}")
    st.error(f"Error: {message}")

