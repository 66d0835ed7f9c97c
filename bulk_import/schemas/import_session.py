"""
bulk_import/schemas/import_session.py

Request and response schemas for the import session endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from bulk_import.schemas.validation_report import ScalarValue


class NotificationResponse(BaseModel):
    level: str
    message: str


class ReportSummaryResponse(BaseModel):
    """
    Counts of a validation or commit report.
    """

    total_records: int = Field(..., ge=0)
    success_count: int = Field(..., ge=0)
    failed_count: int = Field(..., ge=0)
    consistent: bool = True


class ImportFileResponse(BaseModel):
    name: str
    byte_size: int = Field(..., ge=0)
    mime_kind: str


class ImportSessionResponse(BaseModel):
    """
    API response model for the current state of one import session.
    """

    session_id: str
    stage: str
    file: ImportFileResponse | None = None
    report: ReportSummaryResponse | None = None
    commit_result: ReportSummaryResponse | None = None
    active_view: str
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    upload_progress: int = Field(..., ge=0, le=100)
    can_submit: bool
    can_commit: bool
    editing_rows: list[str] = Field(default_factory=list)
    changed_rows: list[str] = Field(default_factory=list)
    error_message: str | None = None
    notifications: list[NotificationResponse] = Field(default_factory=list)


class LookupOptionResponse(BaseModel):
    id: str
    name: str


class RenderedCellResponse(BaseModel):
    field: str
    label: str
    kind: str
    value: ScalarValue = None
    display: str
    changed: bool = False
    error: str | None = None
    options: list[LookupOptionResponse] = Field(default_factory=list)


class RenderedRowResponse(BaseModel):
    row_id: str
    display_index: int
    is_valid: bool
    editing: bool
    has_changes: bool
    messages: list[str] = Field(default_factory=list)
    cells: list[RenderedCellResponse] = Field(default_factory=list)


class ResultPageResponse(BaseModel):
    """
    One page of the active result view.
    """

    view: str
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    total_rows: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)
    page_numbers: list[int] = Field(default_factory=list)
    has_previous: bool
    has_next: bool
    empty_message: str | None = None
    rows: list[RenderedRowResponse] = Field(default_factory=list)


class ViewSelectionRequest(BaseModel):
    view: str = Field(..., min_length=1)


class FieldEditRequest(BaseModel):
    field: str = Field(..., min_length=1)
    value: Any = None


class MergeSetResponse(BaseModel):
    rows: list[dict[str, ScalarValue]] = Field(default_factory=list)
