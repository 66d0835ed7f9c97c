"""Streamlit operator UI for bulk record imports.

Replaceable UI layer; all display logic lives here.
Workflow state is owned by ImportSessionController only.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

import pandas as pd
import streamlit as st

from bulk_import.connectors.base import ConnectorRequestError
from bulk_import.domain.errors import ImportPipelineError
from bulk_import.domain.field_registry import EMPTY_DISPLAY, FieldKind
from bulk_import.domain.import_session import ImportStage, NotificationLevel, ResultView
from bulk_import.domain.result_browser import RenderedCell, RenderedRow
from bulk_import.logging_utils import configure_logging
from bulk_import.services.import_session_controller import (
    ImportSessionController,
    build_import_session_controller,
)

# ── Page config (must be first Streamlit call) ─────────────────────────────
st.set_page_config(
    page_title="Bulk Import",
    page_icon="📥",
    layout="wide",
    initial_sidebar_state="expanded",
)


@st.cache_resource(show_spinner=False)
def _configure_logging_once() -> bool:
    configure_logging()
    return True


_configure_logging_once()


# ── Session state defaults ─────────────────────────────────────────────────
_STATE_DEFAULTS: dict = {
    "controller": None,
    "uploaded_token": None,
    "uploader_nonce": 0,
    "template_bytes": None,
}

for _key, _val in _STATE_DEFAULTS.items():
    if _key not in st.session_state:
        st.session_state[_key] = _val


def _controller() -> ImportSessionController:
    controller: Optional[ImportSessionController] = st.session_state.controller
    if controller is None:
        controller = build_import_session_controller()
        controller.open()
        st.session_state.controller = controller
    return controller


_NOTIFICATION_RENDERERS = {
    NotificationLevel.SUCCESS: st.success,
    NotificationLevel.INFO: st.info,
    NotificationLevel.WARNING: st.warning,
    NotificationLevel.ERROR: st.error,
}


def _flush_notifications(controller: ImportSessionController) -> None:
    for notification in controller.drain_notifications():
        _NOTIFICATION_RENDERERS.get(notification.level, st.info)(notification.message)


def _run(action, *args: Any) -> None:
    """Call a controller action and surface operator errors inline."""
    try:
        action(*args)
    except (ImportPipelineError, ConnectorRequestError, ValueError) as exc:
        st.error(str(exc))


controller = _controller()
session = controller.session


# ── Sidebar ────────────────────────────────────────────────────────────────
with st.sidebar:
    st.title(f"{controller.entity_name} Import")
    st.caption(f"CSV or Excel, up to {controller.max_file_size_mb:g}MB")
    st.divider()

    if st.button("Prepare template", use_container_width=True):
        try:
            st.session_state.template_bytes = controller.fetch_template()
        except ConnectorRequestError as exc:
            st.error(str(exc))
    if st.session_state.template_bytes:
        st.download_button(
            "Download template",
            data=st.session_state.template_bytes,
            file_name=controller.template_file_name(),
            use_container_width=True,
        )

    st.divider()
    uploaded_file = st.file_uploader(
        "Select file",
        type=["csv", "xls", "xlsx"],
        disabled=session.stage != ImportStage.INITIAL,
        key=f"uploader-{st.session_state.uploader_nonce}",
    )
    if uploaded_file is not None and session.stage == ImportStage.INITIAL:
        token = (uploaded_file.name, uploaded_file.size)
        if st.session_state.uploaded_token != token:
            st.session_state.uploaded_token = token
            _run(
                lambda: controller.select_file(
                    name=uploaded_file.name,
                    content=uploaded_file.getvalue(),
                    mime_kind=uploaded_file.type,
                )
            )

    if session.file is not None:
        st.success(f"{session.file.name} ({session.file.byte_size / 1024:.1f} KB)")

    validate = st.button(
        "Validate",
        type="primary",
        use_container_width=True,
        disabled=not session.can_submit or controller.is_busy,
    )

    if session.stage != ImportStage.INITIAL or session.file is not None:
        if st.button("Start over", use_container_width=True):
            controller.reset()
            st.session_state.uploaded_token = None
            st.session_state.uploader_nonce += 1
            st.rerun()


# ── Validate ───────────────────────────────────────────────────────────────
if validate:
    with st.spinner("Validating file…"):
        _run(controller.submit_for_validation)
    st.rerun()


# ── Helper renderers ───────────────────────────────────────────────────────
def _render_stats(controller: ImportSessionController) -> None:
    report = controller.session.report
    if report is None:
        return
    cols = st.columns(3)
    cols[0].metric("Total records", f"{report.total_records:,}")
    cols[1].metric("Valid", f"{report.success_count:,}")
    cols[2].metric("Errors", f"{report.failed_count:,}")


def _render_view_toggle(controller: ImportSessionController) -> None:
    report = controller.session.report
    if report is None:
        return
    labels = {
        ResultView.INVALID: f"Error rows ({report.failed_count})",
        ResultView.VALID: f"Valid rows ({report.success_count})",
    }
    views = [ResultView.INVALID, ResultView.VALID]
    selected = st.radio(
        "Show",
        options=views,
        index=views.index(controller.session.active_view),
        format_func=labels.get,
        horizontal=True,
    )
    if selected != controller.session.active_view:
        controller.switch_view(selected)
        st.rerun()


def _page_frame(rows: list[RenderedRow], show_errors: bool) -> pd.DataFrame:
    records = []
    for row in rows:
        record = {"Row": row.display_index}
        for cell in row.cells:
            record[cell.label] = f"{cell.display} ✎" if cell.changed else cell.display
        if show_errors:
            record["Errors"] = "; ".join(row.messages)
        records.append(record)
    return pd.DataFrame(records)


def _cell_editor(row_id: str, cell: RenderedCell) -> Any:
    key = f"field-{row_id}-{cell.field}"
    if cell.kind == FieldKind.ENUM:
        option_ids = [""] + [option.id for option in cell.options]
        names = {option.id: option.name for option in cell.options}
        current = "" if cell.value is None else str(cell.value)
        if current not in option_ids:
            option_ids.append(current)
        return st.selectbox(
            cell.label,
            options=option_ids,
            index=option_ids.index(current),
            format_func=lambda value: names.get(value, value or EMPTY_DISPLAY),
            key=key,
        )
    if cell.kind == FieldKind.DATE:
        try:
            current_date = dt.date.fromisoformat(str(cell.value)[:10]) if cell.value else None
        except ValueError:
            current_date = None
        picked = st.date_input(cell.label, value=current_date, key=key)
        return picked.isoformat() if isinstance(picked, dt.date) else ""
    return st.text_input(cell.label, value="" if cell.value is None else str(cell.value), key=key)


def _render_row_editor(controller: ImportSessionController, row: RenderedRow) -> None:
    with st.expander(f"Editing row {row.display_index}", expanded=True):
        for message in row.messages:
            st.warning(message)
        edited: dict[str, Any] = {}
        cols = st.columns(3)
        for idx, cell in enumerate(row.cells):
            with cols[idx % 3]:
                edited[cell.field] = _cell_editor(row.row_id, cell)
                if cell.error:
                    st.caption(f"❌ {cell.error}")
        save_col, discard_col = st.columns(2)
        save = save_col.button("Save", type="primary", use_container_width=True, key=f"save-{row.row_id}")
        discard = discard_col.button("Discard", use_container_width=True, key=f"discard-{row.row_id}")

    if save:
        current = {cell.field: "" if cell.value is None else str(cell.value) for cell in row.cells}
        try:
            for field_name, value in edited.items():
                if str(value) != current.get(field_name, ""):
                    controller.set_field(row.row_id, field_name, value)
            controller.save_row(row.row_id)
        except (ImportPipelineError, ValueError) as exc:
            st.error(str(exc))
            return
        st.rerun()
    if discard:
        controller.discard_row(row.row_id)
        st.rerun()


def _render_row_actions(controller: ImportSessionController, rows: list[RenderedRow]) -> None:
    editing = [row for row in rows if row.editing]
    for row in editing:
        _render_row_editor(controller, row)
    if editing:
        return

    for row in rows:
        cols = st.columns([1, 1, 1, 5])
        cols[0].markdown(f"Row {row.display_index}")
        if cols[1].button("Edit", key=f"begin-{row.row_id}"):
            _run(controller.begin_edit, row.row_id)
            st.rerun()
        if not row.is_valid and row.has_changes:
            if cols[2].button("Re-validate", key=f"check-{row.row_id}"):
                with st.spinner("Re-validating row…"):
                    _run(controller.revalidate_row, row.row_id)
                st.rerun()
        elif row.has_changes:
            if cols[2].button("Undo", key=f"undo-{row.row_id}"):
                controller.discard_row(row.row_id)
                st.rerun()


def _render_pager(controller: ImportSessionController) -> None:
    result_page = controller.current_page()
    if result_page.total_pages <= 1:
        return
    numbers = controller.page_numbers()
    cols = st.columns(len(numbers) + 2)
    if cols[0].button("‹", disabled=not result_page.has_previous, key="page-prev"):
        controller.previous_page()
        st.rerun()
    for idx, number in enumerate(numbers, start=1):
        label = f"[{number}]" if number == result_page.page else str(number)
        if cols[idx].button(label, key=f"page-{number}"):
            controller.go_to_page(number)
            st.rerun()
    if cols[-1].button("›", disabled=not result_page.has_next, key="page-next"):
        controller.next_page()
        st.rerun()
    st.caption(f"Page {result_page.page} of {result_page.total_pages} · {result_page.total_rows} rows")


def _render_results(controller: ImportSessionController, *, editable: bool) -> None:
    _render_view_toggle(controller)
    result_page, rows = controller.render_current_page()
    if result_page.is_empty:
        st.info(result_page.empty_message)
        return
    st.dataframe(
        _page_frame(rows, show_errors=result_page.view == ResultView.INVALID),
        use_container_width=True,
        hide_index=True,
    )
    if editable:
        _render_row_actions(controller, rows)
    _render_pager(controller)


# ── Main content area ──────────────────────────────────────────────────────
_flush_notifications(controller)
session = controller.session

if session.error_message:
    st.error(session.error_message)

if session.stage == ImportStage.INITIAL:
    if session.file is None:
        st.info("Select a CSV or Excel file in the sidebar, then press Validate.")
    else:
        st.info("File ready. Press Validate to check it against the server rules.")

elif session.stage == ImportStage.UPLOADING:
    st.progress(session.upload_progress / 100, text=f"Uploading… {session.upload_progress}%")

elif session.stage == ImportStage.REVIEWING:
    st.subheader("Review")
    _render_stats(controller)
    if st.button(
        f"Import {session.report.success_count} valid rows",
        type="primary",
        disabled=not session.can_commit or controller.is_busy,
    ):
        with st.spinner("Importing…"):
            _run(controller.commit)
        st.rerun()
    _render_results(controller, editable=True)

elif session.stage == ImportStage.PROCESSING:
    st.progress(1.0, text="Importing…")

elif session.stage == ImportStage.COMPLETE:
    st.subheader("Import complete")
    _render_stats(controller)
    _render_results(controller, editable=False)
