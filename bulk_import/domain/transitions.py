"""
bulk_import/domain/transitions.py

Pure state transitions of the import workflow.

Each function takes the current ``ImportSession`` and returns the next one,
raising ``InvalidTransitionError`` when the event is not allowed in the
current stage. Nothing here performs I/O.

    initial -> uploading -> reviewing -> processing -> complete
                   |                        |
                   +-> initial (failure)    +-> reviewing (failure)

``reset`` returns any stage to ``initial``.
"""

from __future__ import annotations

from dataclasses import replace

from bulk_import.domain.correction_overlay import CorrectionOverlay
from bulk_import.domain.errors import InvalidTransitionError
from bulk_import.domain.import_report import ValidationReport
from bulk_import.domain.import_session import ImportFile, ImportSession, ImportStage, ResultView
from bulk_import.domain.result_browser import ViewRow, build_view_rows, clamp_page


def _require_stage(session: ImportSession, action: str, *stages: str) -> None:
    if session.stage not in stages:
        allowed = ", ".join(stages)
        raise InvalidTransitionError(
            f"Cannot {action} while import is '{session.stage}' (allowed: {allowed})."
        )


def _default_view(report: ValidationReport) -> str:
    return ResultView.INVALID if report.failed_count > 0 else ResultView.VALID


def new_session(page_size: int) -> ImportSession:
    return ImportSession(page_size=max(1, page_size))


def active_rows(session: ImportSession) -> list[ViewRow]:
    return build_view_rows(session.report, session.active_view)


def select_file(session: ImportSession, import_file: ImportFile) -> ImportSession:
    _require_stage(session, "select a file", ImportStage.INITIAL)
    return replace(
        session,
        file=import_file,
        report=None,
        overlay=CorrectionOverlay(),
        commit_result=None,
        active_view=ResultView.INVALID,
        page=1,
        upload_progress=0,
        error_message=None,
    )


def start_upload(session: ImportSession) -> ImportSession:
    _require_stage(session, "submit for validation", ImportStage.INITIAL)
    if session.file is None:
        raise InvalidTransitionError("Select a file before submitting it for validation.")
    return replace(session, stage=ImportStage.UPLOADING, upload_progress=0, error_message=None)


def record_upload_progress(session: ImportSession, percent: int) -> ImportSession:
    _require_stage(session, "report upload progress", ImportStage.UPLOADING)
    bounded = min(100, max(0, int(percent)))
    if bounded <= session.upload_progress:
        return session
    return replace(session, upload_progress=bounded)


def validation_succeeded(session: ImportSession, report: ValidationReport) -> ImportSession:
    _require_stage(session, "store a validation report", ImportStage.UPLOADING)
    return replace(
        session,
        stage=ImportStage.REVIEWING,
        report=report,
        overlay=CorrectionOverlay(),
        active_view=_default_view(report),
        page=1,
        upload_progress=100,
        error_message=None,
    )


def validation_failed(session: ImportSession, message: str) -> ImportSession:
    _require_stage(session, "fail validation", ImportStage.UPLOADING)
    return replace(session, stage=ImportStage.INITIAL, upload_progress=0, error_message=message)


def start_commit(session: ImportSession) -> ImportSession:
    _require_stage(session, "commit", ImportStage.REVIEWING)
    if session.report is None or session.report.success_count <= 0:
        raise InvalidTransitionError("There are no valid rows to commit.")
    return replace(session, stage=ImportStage.PROCESSING, error_message=None)


def commit_succeeded(session: ImportSession, result: ValidationReport) -> ImportSession:
    _require_stage(session, "store a commit result", ImportStage.PROCESSING)
    return replace(
        session,
        stage=ImportStage.COMPLETE,
        report=result,
        commit_result=result,
        overlay=CorrectionOverlay(),
        active_view=_default_view(result),
        page=1,
        error_message=None,
    )


def commit_failed(session: ImportSession, message: str) -> ImportSession:
    _require_stage(session, "fail commit", ImportStage.PROCESSING)
    return replace(session, stage=ImportStage.REVIEWING, error_message=message)


def reset(session: ImportSession) -> ImportSession:
    return new_session(session.page_size)


def switch_view(session: ImportSession, view: str) -> ImportSession:
    _require_stage(session, "switch views", ImportStage.REVIEWING, ImportStage.COMPLETE)
    if view not in (ResultView.VALID, ResultView.INVALID):
        raise ValueError(f"Unknown result view '{view}'.")
    return replace(session, active_view=view, page=1)


def go_to_page(session: ImportSession, page: int) -> ImportSession:
    total_rows = len(active_rows(session))
    return replace(session, page=clamp_page(page, total_rows, session.page_size))


def update_overlay(session: ImportSession, overlay: CorrectionOverlay) -> ImportSession:
    _require_stage(session, "edit rows", ImportStage.REVIEWING)
    return replace(session, overlay=overlay)


def replace_report(session: ImportSession, report: ValidationReport) -> ImportSession:
    """
    Swap in a report derived from the current one and keep ``page`` in range.
    """

    _require_stage(session, "update the report", ImportStage.REVIEWING)
    updated = replace(session, report=report)
    return go_to_page(updated, updated.page)
