"""
bulk_import/schemas/validation_report.py

Wire contracts of the validation, commit and lookup backends.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

ScalarValue = Union[str, int, float, bool, None]


class RowErrorPayload(BaseModel):
    """
    One rejected row as reported by the backend.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    row: int = Field(..., ge=0)
    errors: list[str] = Field(default_factory=list)
    field_errors: dict[str, str] = Field(default_factory=dict, alias="fieldErrors")
    data: dict[str, ScalarValue] = Field(default_factory=dict)


class ValidationReportPayload(BaseModel):
    """
    Report body shared by validate-bulk, validate-single-row and bulk-add.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool | None = None
    total_records: int = Field(..., ge=0, alias="totalRecords")
    success_count: int = Field(..., ge=0, alias="successCount")
    failed_count: int = Field(..., ge=0, alias="failedCount")
    valid_rows: list[dict[str, ScalarValue]] = Field(default_factory=list, alias="validRows")
    errors: list[RowErrorPayload] = Field(default_factory=list)


class LookupOptionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str


class BackendErrorPayload(BaseModel):
    """
    Error body returned by the backend on rejected requests.
    """

    model_config = ConfigDict(extra="ignore")

    error: str | None = None
    message: str | None = None

    def describe(self) -> str | None:
        return self.error or self.message


def coerce_lookup_id(raw: Any) -> Any:
    """
    Lookup ids arrive as numbers from some backends; pickers compare strings.
    """

    if isinstance(raw, dict) and "id" in raw:
        return {**raw, "id": str(raw["id"])}
    return raw
