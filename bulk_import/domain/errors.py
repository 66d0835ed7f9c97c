"""
Domain exceptions for the bulk import workflow.
"""

from __future__ import annotations


class ImportPipelineError(Exception):
    """Base exception for import workflow failures."""


class IntakeRejectedError(ImportPipelineError, ValueError):
    """Raised when a selected file fails type or size checks."""

    UNSUPPORTED_TYPE = "unsupported_type"
    EMPTY_FILE = "empty_file"
    FILE_TOO_LARGE = "file_too_large"

    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class InvalidTransitionError(ImportPipelineError):
    """Raised when an operation is not allowed in the current stage."""


class UnknownRowError(ImportPipelineError, LookupError):
    """Raised when a row id does not belong to the current report."""


class RowNotInEditModeError(ImportPipelineError):
    """Raised when a field is changed on a row that is not being edited."""


class FieldValueError(ImportPipelineError, ValueError):
    """Raised when a value is not acceptable for a field's editor kind."""

    def __init__(self, *, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
