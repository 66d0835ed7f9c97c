"""
bulk_import/validators package marker.
"""

from bulk_import.validators.file_intake import FileIntakeValidator

__all__ = [
    "FileIntakeValidator",
]
