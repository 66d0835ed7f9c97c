"""
bulk_import/domain package marker.
"""

from bulk_import.domain.correction_overlay import CorrectionOverlay
from bulk_import.domain.errors import (
    FieldValueError,
    ImportPipelineError,
    IntakeRejectedError,
    InvalidTransitionError,
    RowNotInEditModeError,
    UnknownRowError,
)
from bulk_import.domain.field_registry import (
    FieldKind,
    FieldRegistry,
    FieldSpec,
    LookupOption,
    ReferenceData,
    build_customer_field_registry,
)
from bulk_import.domain.import_report import ReportRow, RowData, RowError, ValidationReport, make_row_id
from bulk_import.domain.import_session import (
    ImportFile,
    ImportSession,
    ImportStage,
    Notification,
    NotificationLevel,
    ResultView,
)

__all__ = [
    "CorrectionOverlay",
    "FieldKind",
    "FieldRegistry",
    "FieldSpec",
    "FieldValueError",
    "ImportFile",
    "ImportPipelineError",
    "ImportSession",
    "ImportStage",
    "IntakeRejectedError",
    "InvalidTransitionError",
    "LookupOption",
    "Notification",
    "NotificationLevel",
    "ReferenceData",
    "ReportRow",
    "ResultView",
    "RowData",
    "RowError",
    "RowNotInEditModeError",
    "UnknownRowError",
    "ValidationReport",
    "build_customer_field_registry",
    "make_row_id",
]
