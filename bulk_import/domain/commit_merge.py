"""
bulk_import/domain/commit_merge.py

Builds the batch of rows sent to the commit backend.
"""

from __future__ import annotations

from bulk_import.domain.correction_overlay import CorrectionOverlay
from bulk_import.domain.field_registry import FieldRegistry
from bulk_import.domain.import_report import RowData, ValidationReport


def build_merge_set(
    report: ValidationReport,
    overlay: CorrectionOverlay,
    registry: FieldRegistry,
) -> list[RowData]:
    """
    Valid rows in report order with their overlay deltas applied.

    Error rows are never part of the batch, whether or not they were edited;
    a row has to be promoted into ``valid_rows`` by re-validation first.
    """

    merged: list[RowData] = []
    for row in report.valid_rows:
        effective = overlay.effective_row(row.row_id, row.data)
        merged.append(
            {name: registry.normalize_for_commit(name, value) for name, value in effective.items()}
        )
    return merged
