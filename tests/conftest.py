"""
tests/conftest.py

Shared fixtures: an in-memory ImportBackend and report builders.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

import pytest

from bulk_import.connectors.base import ConnectorRequestError
from bulk_import.connectors.import_backend import (
    ImportBackend,
    ProgressCallback,
    RowCheckResult,
    build_report,
)
from bulk_import.domain.field_registry import LookupOption, ReferenceData
from bulk_import.domain.import_report import RowData, ValidationReport
from bulk_import.domain.import_session import ImportFile
from bulk_import.schemas.validation_report import ValidationReportPayload


def make_report(
    valid_rows: Sequence[Mapping[str, Any]] = (),
    errors: Sequence[Mapping[str, Any]] = (),
    *,
    total_records: int | None = None,
    success_count: int | None = None,
    failed_count: int | None = None,
    namespace: str = "validate",
    fingerprint: str = "fixture",
) -> ValidationReport:
    """Build a domain report through the same path the HTTP connector uses."""
    payload = ValidationReportPayload.model_validate(
        {
            "totalRecords": len(valid_rows) + len(errors) if total_records is None else total_records,
            "successCount": len(valid_rows) if success_count is None else success_count,
            "failedCount": len(errors) if failed_count is None else failed_count,
            "validRows": [dict(row) for row in valid_rows],
            "errors": [dict(error) for error in errors],
        }
    )
    return build_report(payload, namespace=namespace, fingerprint=fingerprint)


def customer_row(index: int, **overrides: Any) -> RowData:
    row: RowData = {
        "internet_id": f"NET-{index:03d}",
        "first_name": f"First{index}",
        "last_name": f"Last{index}",
        "email": f"user{index}@example.com",
        "area_id": "A-1",
        "connection_type": "internet",
        "installation_date": "2024-01-15",
    }
    row.update(overrides)
    return row


def ten_row_report() -> ValidationReport:
    """7 valid rows and 3 error rows at source indices 1, 4 and 8."""
    valid_indices = [0, 2, 3, 5, 6, 7, 9]
    error_indices = [1, 4, 8]
    return make_report(
        valid_rows=[customer_row(index) for index in valid_indices],
        errors=[
            {
                "row": index,
                "errors": ["Area is required"],
                "fieldErrors": {"area_id": "Area is required"},
                "data": customer_row(index, area_id=""),
            }
            for index in error_indices
        ],
    )


class FakeImportBackend(ImportBackend):
    """ImportBackend double that records every call."""

    def __init__(
        self,
        *,
        report: ValidationReport | None = None,
        commit_result: ValidationReport | Callable[[Sequence[RowData]], ValidationReport] | None = None,
        validate_error: Exception | None = None,
        commit_error: Exception | None = None,
        row_results: Sequence[RowCheckResult | Exception] = (),
        reference_data: ReferenceData | None = None,
        reference_error: Exception | None = None,
        template: bytes = b"PK\x03\x04template",
    ) -> None:
        self.report = report
        self.commit_result = commit_result
        self.validate_error = validate_error
        self.commit_error = commit_error
        self.row_results = list(row_results)
        self.reference_data = reference_data
        self.reference_error = reference_error
        self.template = template
        self.validated_files: list[ImportFile] = []
        self.committed_batches: list[list[RowData]] = []
        self.checked_rows: list[dict[str, Any]] = []

    def validate_file(
        self,
        import_file: ImportFile,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> ValidationReport:
        self.validated_files.append(import_file)
        if on_progress is not None:
            on_progress(40)
            on_progress(100)
        if self.validate_error is not None:
            raise self.validate_error
        assert self.report is not None
        return self.report

    def validate_row(self, row_data: Mapping[str, Any]) -> RowCheckResult:
        self.checked_rows.append(dict(row_data))
        outcome = self.row_results.pop(0) if self.row_results else RowCheckResult(passed=True)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def commit_rows(
        self,
        rows: Sequence[RowData],
        *,
        source_file: ImportFile | None = None,
    ) -> ValidationReport:
        batch = [dict(row) for row in rows]
        self.committed_batches.append(batch)
        if self.commit_error is not None:
            raise self.commit_error
        if callable(self.commit_result):
            return self.commit_result(batch)
        if self.commit_result is not None:
            return self.commit_result
        return make_report(valid_rows=batch, namespace="commit")

    def fetch_reference_data(self) -> ReferenceData:
        if self.reference_error is not None:
            raise self.reference_error
        if self.reference_data is not None:
            return self.reference_data
        return ReferenceData(
            {
                "areas": [
                    LookupOption(id="A-1", name="Downtown"),
                    LookupOption(id="A-12", name="Riverside"),
                ],
                "servicePlans": [LookupOption(id="P-1", name="Basic 10 Mbps")],
                "isps": [LookupOption(id="I-1", name="FiberNet")],
            }
        )

    def download_template(self) -> bytes:
        return self.template


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def report_factory() -> Callable[..., ValidationReport]:
    return make_report


@pytest.fixture()
def row_factory() -> Callable[..., RowData]:
    return customer_row


@pytest.fixture()
def ten_rows() -> ValidationReport:
    return ten_row_report()


@pytest.fixture()
def backend_factory() -> Callable[..., FakeImportBackend]:
    return FakeImportBackend


@pytest.fixture()
def fake_backend(ten_rows: ValidationReport) -> FakeImportBackend:
    return FakeImportBackend(report=ten_rows)


@pytest.fixture()
def gateway_error() -> ConnectorRequestError:
    return ConnectorRequestError("import_backend: request timed out.")
