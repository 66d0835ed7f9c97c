"""
bulk_import/schemas package marker.
"""

from bulk_import.schemas.import_session import (
    FieldEditRequest,
    ImportFileResponse,
    ImportSessionResponse,
    LookupOptionResponse,
    MergeSetResponse,
    NotificationResponse,
    RenderedCellResponse,
    RenderedRowResponse,
    ReportSummaryResponse,
    ResultPageResponse,
    ViewSelectionRequest,
)
from bulk_import.schemas.validation_report import (
    BackendErrorPayload,
    LookupOptionPayload,
    RowErrorPayload,
    ValidationReportPayload,
)

__all__ = [
    "BackendErrorPayload",
    "FieldEditRequest",
    "ImportFileResponse",
    "ImportSessionResponse",
    "LookupOptionPayload",
    "LookupOptionResponse",
    "MergeSetResponse",
    "NotificationResponse",
    "RenderedCellResponse",
    "RenderedRowResponse",
    "ReportSummaryResponse",
    "ResultPageResponse",
    "RowErrorPayload",
    "ValidationReportPayload",
    "ViewSelectionRequest",
]
