"""
bulk_import/services package marker.
"""

from bulk_import.services.import_session_controller import (
    ImportSessionController,
    build_import_session_controller,
)
from bulk_import.services.session_registry import ImportSessionRegistry, get_import_session_registry

__all__ = [
    "ImportSessionController",
    "ImportSessionRegistry",
    "build_import_session_controller",
    "get_import_session_registry",
]
