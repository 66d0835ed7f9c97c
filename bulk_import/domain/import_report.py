"""
bulk_import/domain/import_report.py

Validation report model returned by the validation and commit backends.

Rows carry a synthetic ``row_id`` assigned once when the report is received.
The id is derived from the source file fingerprint, the row kind and its
index, so it stays the same across view switches and when a corrected error
row is promoted into the valid set.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace
from typing import Mapping, Union

Scalar = Union[str, int, float, bool, None]
RowData = dict[str, Scalar]

VALID_ROW_KIND = "valid"
ERROR_ROW_KIND = "error"


def make_row_id(*, namespace: str, fingerprint: str, kind: str, index: int) -> str:
    """
    Build a stable identifier for one row of one report.
    """

    raw = f"{namespace}:{fingerprint}:{kind}:{index}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class ReportRow:
    """
    One row the backend accepted.
    """

    row_id: str
    data: RowData


@dataclass(frozen=True)
class RowError:
    """
    One row the backend rejected, with its messages.
    """

    row_id: str
    source_row_index: int
    messages: tuple[str, ...]
    data: RowData
    field_errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationReport:
    """
    Immutable partition of an import into valid rows and error rows.
    """

    total_records: int
    success_count: int
    failed_count: int
    valid_rows: tuple[ReportRow, ...] = ()
    errors: tuple[RowError, ...] = ()

    def consistency_issues(self) -> list[str]:
        """
        Describe every count that disagrees with the row collections.
        """

        issues: list[str] = []
        if self.success_count + self.failed_count != self.total_records:
            issues.append(
                f"successCount ({self.success_count}) + failedCount ({self.failed_count}) "
                f"!= totalRecords ({self.total_records})"
            )
        if len(self.valid_rows) != self.success_count:
            issues.append(
                f"validRows has {len(self.valid_rows)} rows but successCount is {self.success_count}"
            )
        if len(self.errors) != self.failed_count:
            issues.append(
                f"errors has {len(self.errors)} rows but failedCount is {self.failed_count}"
            )
        return issues

    @property
    def is_consistent(self) -> bool:
        return not self.consistency_issues()

    @property
    def row_ids(self) -> frozenset[str]:
        return frozenset(row.row_id for row in self.valid_rows) | frozenset(
            error.row_id for error in self.errors
        )

    def find_valid_row(self, row_id: str) -> ReportRow | None:
        for row in self.valid_rows:
            if row.row_id == row_id:
                return row
        return None

    def find_error(self, row_id: str) -> RowError | None:
        for error in self.errors:
            if error.row_id == row_id:
                return error
        return None

    def original_data(self, row_id: str) -> RowData | None:
        """
        Return the row data as the backend reported it, from either set.
        """

        valid_row = self.find_valid_row(row_id)
        if valid_row is not None:
            return valid_row.data
        error = self.find_error(row_id)
        if error is not None:
            return error.data
        return None

    def with_error_promoted(self, row_id: str) -> ValidationReport:
        """
        Move an error row into the valid rows after it passed re-validation.

        The row keeps its id and original data; the operator's corrections
        stay in the overlay and are applied at merge time.
        """

        error = self.find_error(row_id)
        if error is None:
            return self
        return replace(
            self,
            success_count=self.success_count + 1,
            failed_count=self.failed_count - 1,
            valid_rows=self.valid_rows + (ReportRow(row_id=row_id, data=dict(error.data)),),
            errors=tuple(item for item in self.errors if item.row_id != row_id),
        )

    def with_error_messages(
        self,
        row_id: str,
        *,
        messages: tuple[str, ...],
        field_errors: Mapping[str, str],
    ) -> ValidationReport:
        """
        Swap the messages of an error row that is still invalid.
        """

        return replace(
            self,
            errors=tuple(
                replace(item, messages=messages, field_errors=dict(field_errors))
                if item.row_id == row_id
                else item
                for item in self.errors
            ),
        )
