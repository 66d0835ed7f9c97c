"""
bulk_import/domain/correction_overlay.py

Sparse per-row field edits layered over a validation report.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from bulk_import.domain.errors import RowNotInEditModeError
from bulk_import.domain.import_report import RowData, Scalar


@dataclass(frozen=True)
class CorrectionOverlay:
    """
    Changed fields per row id plus the set of rows currently in edit mode.

    Every operation returns a new overlay; the original report data is never
    touched.
    """

    deltas: dict[str, RowData] = field(default_factory=dict)
    editing: frozenset[str] = frozenset()

    def is_editing(self, row_id: str) -> bool:
        return row_id in self.editing

    def delta_for(self, row_id: str) -> RowData:
        return dict(self.deltas.get(row_id, {}))

    def has_changes(self, row_id: str) -> bool:
        return bool(self.deltas.get(row_id))

    def begin_edit(self, row_id: str) -> CorrectionOverlay:
        if row_id in self.editing:
            return self
        return CorrectionOverlay(deltas=self.deltas, editing=self.editing | {row_id})

    def set_field(self, row_id: str, field_name: str, value: Scalar) -> CorrectionOverlay:
        if row_id not in self.editing:
            raise RowNotInEditModeError(f"Row {row_id} is not in edit mode.")
        deltas = dict(self.deltas)
        deltas[row_id] = {**deltas.get(row_id, {}), field_name: value}
        return CorrectionOverlay(deltas=deltas, editing=self.editing)

    def save(self, row_id: str) -> CorrectionOverlay:
        """
        Leave edit mode and keep the row's delta.
        """

        if row_id not in self.editing:
            return self
        return CorrectionOverlay(deltas=self.deltas, editing=self.editing - {row_id})

    def discard(self, row_id: str) -> CorrectionOverlay:
        """
        Leave edit mode and drop the row's delta entirely.
        """

        if row_id not in self.editing and row_id not in self.deltas:
            return self
        deltas = {key: value for key, value in self.deltas.items() if key != row_id}
        return CorrectionOverlay(deltas=deltas, editing=self.editing - {row_id})

    def effective_row(self, row_id: str, original: Mapping[str, Scalar]) -> RowData:
        return {**original, **self.deltas.get(row_id, {})}
