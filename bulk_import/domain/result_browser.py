"""
bulk_import/domain/result_browser.py

Derived views over a validation report, pagination, and row rendering.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

from bulk_import.domain.correction_overlay import CorrectionOverlay
from bulk_import.domain.field_registry import FieldRegistry, LookupOption, ReferenceData
from bulk_import.domain.import_report import RowData, Scalar, ValidationReport
from bulk_import.domain.import_session import ResultView

EMPTY_STATE_MESSAGES = {
    ResultView.INVALID: "No error rows left",
    ResultView.VALID: "No valid rows found",
}

DEFAULT_PAGE_WINDOW = 5


@dataclass(frozen=True)
class ViewRow:
    """
    One row of the active view, tagged with how it is presented.
    """

    row_id: str
    is_valid: bool
    display_index: int
    data: RowData
    messages: tuple[str, ...] = ()
    field_errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ResultPage:
    """
    One page of the active view.
    """

    view: str
    page: int
    page_size: int
    total_rows: int
    total_pages: int
    rows: tuple[ViewRow, ...]

    @property
    def is_empty(self) -> bool:
        return self.total_rows == 0

    @property
    def empty_message(self) -> str | None:
        if not self.is_empty:
            return None
        return EMPTY_STATE_MESSAGES.get(self.view, "No rows")

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


@dataclass(frozen=True)
class RenderedCell:
    field: str
    label: str
    kind: str
    value: Scalar
    display: str
    changed: bool = False
    error: str | None = None
    options: tuple[LookupOption, ...] = ()


@dataclass(frozen=True)
class RenderedRow:
    row_id: str
    display_index: int
    is_valid: bool
    editing: bool
    has_changes: bool
    messages: tuple[str, ...]
    cells: tuple[RenderedCell, ...]


def build_view_rows(report: ValidationReport | None, view: str) -> list[ViewRow]:
    """
    Return the rows of ``view`` in report order.
    """

    if report is None:
        return []
    if view == ResultView.VALID:
        return [
            ViewRow(row_id=row.row_id, is_valid=True, display_index=index + 1, data=row.data)
            for index, row in enumerate(report.valid_rows)
        ]
    return [
        ViewRow(
            row_id=error.row_id,
            is_valid=False,
            display_index=error.source_row_index + 1,
            data=error.data,
            messages=error.messages,
            field_errors=error.field_errors,
        )
        for error in report.errors
    ]


def count_pages(total_rows: int, page_size: int) -> int:
    return math.ceil(total_rows / max(1, page_size))


def clamp_page(page: int, total_rows: int, page_size: int) -> int:
    """
    Keep ``page`` within [1, max(1, total_pages)].
    """

    last_page = max(1, count_pages(total_rows, page_size))
    return min(max(1, page), last_page)


def paginate(rows: Sequence[ViewRow], *, view: str, page: int, page_size: int) -> ResultPage:
    page_size = max(1, page_size)
    current = clamp_page(page, len(rows), page_size)
    start = (current - 1) * page_size
    return ResultPage(
        view=view,
        page=current,
        page_size=page_size,
        total_rows=len(rows),
        total_pages=count_pages(len(rows), page_size),
        rows=tuple(rows[start : start + page_size]),
    )


def next_page(page: int, total_rows: int, page_size: int) -> int:
    return clamp_page(page + 1, total_rows, page_size)


def previous_page(page: int, total_rows: int, page_size: int) -> int:
    return clamp_page(page - 1, total_rows, page_size)


def page_window(page: int, total_pages: int, width: int = DEFAULT_PAGE_WINDOW) -> list[int]:
    """
    Page numbers for the numbered pager buttons, centred on ``page`` when possible.
    """

    if total_pages <= 0:
        return []
    if total_pages <= width:
        return list(range(1, total_pages + 1))
    half = width // 2
    if page <= half + 1:
        first = 1
    elif page >= total_pages - half:
        first = total_pages - width + 1
    else:
        first = page - half
    return list(range(first, first + width))


def render_rows(
    rows: Sequence[ViewRow],
    *,
    overlay: CorrectionOverlay,
    registry: FieldRegistry,
    reference_data: ReferenceData,
) -> list[RenderedRow]:
    """
    Apply overlay edits and field display rules to a page of rows.
    """

    columns = registry.columns_for(row.data for row in rows)
    rendered: list[RenderedRow] = []
    for row in rows:
        editing = overlay.is_editing(row.row_id)
        delta = overlay.delta_for(row.row_id)
        effective = overlay.effective_row(row.row_id, row.data)
        cells = []
        for name in columns:
            spec = registry.get(name)
            value = effective.get(name)
            cells.append(
                RenderedCell(
                    field=name,
                    label=spec.label,
                    kind=spec.kind,
                    value=value,
                    display=registry.display_value(name, value, reference_data, editing=editing),
                    changed=name in delta,
                    error=None if row.is_valid else row.field_errors.get(name),
                    options=registry.options_for(name, reference_data) if editing else (),
                )
            )
        rendered.append(
            RenderedRow(
                row_id=row.row_id,
                display_index=row.display_index,
                is_valid=row.is_valid,
                editing=editing,
                has_changes=bool(delta),
                messages=row.messages,
                cells=tuple(cells),
            )
        )
    return rendered
