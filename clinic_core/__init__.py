# =============================================================================
# clinic_core/__init__.py
# Storage layer of the clinic management desktop application
# =============================================================================

__version__ = "1.0.0"
