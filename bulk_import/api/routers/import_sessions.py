"""
bulk_import/api/routers/import_sessions.py

HTTP endpoints driving import sessions: upload, review, correct, commit.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status

from bulk_import.api.dependencies import get_import_session
from bulk_import.connectors.base import ConnectorRequestError
from bulk_import.domain.errors import (
    FieldValueError,
    ImportPipelineError,
    IntakeRejectedError,
    InvalidTransitionError,
    RowNotInEditModeError,
    UnknownRowError,
)
from bulk_import.domain.import_report import ValidationReport
from bulk_import.domain.import_session import ImportSession
from bulk_import.domain.result_browser import RenderedRow, ResultPage
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
from bulk_import.services.import_session_controller import ImportSessionController
from bulk_import.services.session_registry import ImportSessionRegistry, get_import_session_registry

router = APIRouter(prefix="/imports/sessions", tags=["imports"])


def _to_report_summary(report: ValidationReport | None) -> ReportSummaryResponse | None:
    if report is None:
        return None
    return ReportSummaryResponse(
        total_records=report.total_records,
        success_count=report.success_count,
        failed_count=report.failed_count,
        consistent=report.is_consistent,
    )


def _to_session_response(
    controller: ImportSessionController,
    *,
    drain_notifications: bool = True,
) -> ImportSessionResponse:
    session: ImportSession = controller.session
    notifications = controller.drain_notifications() if drain_notifications else []
    return ImportSessionResponse(
        session_id=controller.session_id,
        stage=session.stage,
        file=(
            ImportFileResponse(
                name=session.file.name,
                byte_size=session.file.byte_size,
                mime_kind=session.file.mime_kind,
            )
            if session.file is not None
            else None
        ),
        report=_to_report_summary(session.report),
        commit_result=_to_report_summary(session.commit_result),
        active_view=session.active_view,
        page=session.page,
        page_size=session.page_size,
        upload_progress=session.upload_progress,
        can_submit=session.can_submit and not controller.is_busy,
        can_commit=session.can_commit and not controller.is_busy,
        editing_rows=sorted(session.overlay.editing),
        changed_rows=sorted(session.overlay.deltas),
        error_message=session.error_message,
        notifications=[
            NotificationResponse(level=item.level, message=item.message) for item in notifications
        ],
    )


def _to_row_response(row: RenderedRow) -> RenderedRowResponse:
    return RenderedRowResponse(
        row_id=row.row_id,
        display_index=row.display_index,
        is_valid=row.is_valid,
        editing=row.editing,
        has_changes=row.has_changes,
        messages=list(row.messages),
        cells=[
            RenderedCellResponse(
                field=cell.field,
                label=cell.label,
                kind=cell.kind,
                value=cell.value,
                display=cell.display,
                changed=cell.changed,
                error=cell.error,
                options=[LookupOptionResponse(id=option.id, name=option.name) for option in cell.options],
            )
            for cell in row.cells
        ],
    )


def _to_page_response(
    result_page: ResultPage,
    rows: list[RenderedRow],
    page_numbers: list[int],
) -> ResultPageResponse:
    return ResultPageResponse(
        view=result_page.view,
        page=result_page.page,
        page_size=result_page.page_size,
        total_rows=result_page.total_rows,
        total_pages=result_page.total_pages,
        page_numbers=page_numbers,
        has_previous=result_page.has_previous,
        has_next=result_page.has_next,
        empty_message=result_page.empty_message,
        rows=[_to_row_response(row) for row in rows],
    )


def _to_http_error(exc: ImportPipelineError) -> HTTPException:
    """
    Map workflow exceptions to HTTP status codes.
    """

    if isinstance(exc, IntakeRejectedError):
        status_code = (
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
            if exc.code == IntakeRejectedError.FILE_TOO_LARGE
            else status.HTTP_400_BAD_REQUEST
        )
        return HTTPException(status_code=status_code, detail={"code": exc.code, "message": str(exc)})
    if isinstance(exc, FieldValueError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"field": exc.field, "message": str(exc)},
        )
    if isinstance(exc, UnknownRowError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (InvalidTransitionError, RowNotInEditModeError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _raise_if_gateway_failed(controller: ImportSessionController) -> None:
    message = controller.session.error_message
    if message:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ImportSessionResponse)
def create_import_session(
    registry: ImportSessionRegistry = Depends(get_import_session_registry),
) -> ImportSessionResponse:
    """
    Open a new import session and load its lookup options.
    """

    controller = registry.create()
    controller.open()
    return _to_session_response(controller)


@router.get("/{session_id}", response_model=ImportSessionResponse)
def get_import_session_state(
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    return _to_session_response(controller, drain_notifications=False)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def close_import_session(
    session_id: str,
    registry: ImportSessionRegistry = Depends(get_import_session_registry),
) -> Response:
    if not registry.discard(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Import session '{session_id}' not found or expired.",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{session_id}/file", response_model=ImportSessionResponse)
def select_import_file(
    file: UploadFile = File(...),
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    """
    Attach the spreadsheet to validate; type and size are checked here.
    """

    try:
        # Read at most one byte past the limit; intake rejects anything longer.
        content = file.file.read(controller.max_file_size_bytes + 1)
        controller.select_file(
            name=file.filename or "",
            content=content,
            mime_kind=file.content_type,
        )
    except ImportPipelineError as exc:
        raise _to_http_error(exc) from exc
    finally:
        file.file.close()

    return _to_session_response(controller)


@router.post("/{session_id}/validate", response_model=ImportSessionResponse)
def validate_import_file(
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    try:
        controller.submit_for_validation()
    except ImportPipelineError as exc:
        raise _to_http_error(exc) from exc
    _raise_if_gateway_failed(controller)
    return _to_session_response(controller)


@router.post("/{session_id}/commit", response_model=ImportSessionResponse)
def commit_import(
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    """
    Commit the valid rows, with saved corrections applied, as one batch.
    """

    try:
        controller.commit()
    except ImportPipelineError as exc:
        raise _to_http_error(exc) from exc
    _raise_if_gateway_failed(controller)
    return _to_session_response(controller)


@router.post("/{session_id}/reset", response_model=ImportSessionResponse)
def reset_import(
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    controller.reset()
    return _to_session_response(controller)


@router.put("/{session_id}/view", response_model=ImportSessionResponse)
def select_result_view(
    request: ViewSelectionRequest,
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    try:
        controller.switch_view(request.view)
    except ImportPipelineError as exc:
        raise _to_http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    return _to_session_response(controller)


@router.get("/{session_id}/rows", response_model=ResultPageResponse)
def list_result_rows(
    page: int | None = Query(default=None, ge=1, description="Page to show; out-of-range values are clamped"),
    controller: ImportSessionController = Depends(get_import_session),
) -> ResultPageResponse:
    """
    Return one rendered page of the active view.
    """

    if page is not None:
        controller.go_to_page(page)
    result_page, rows = controller.render_current_page()
    return _to_page_response(result_page, rows, controller.page_numbers())


@router.get("/{session_id}/merge-set", response_model=MergeSetResponse)
def preview_merge_set(
    controller: ImportSessionController = Depends(get_import_session),
) -> MergeSetResponse:
    try:
        rows = controller.merge_set()
    except ImportPipelineError as exc:
        raise _to_http_error(exc) from exc
    return MergeSetResponse(rows=rows)


@router.post("/{session_id}/rows/{row_id}/edit", response_model=ImportSessionResponse)
def begin_row_edit(
    row_id: str,
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    try:
        controller.begin_edit(row_id)
    except ImportPipelineError as exc:
        raise _to_http_error(exc) from exc
    return _to_session_response(controller)


@router.patch("/{session_id}/rows/{row_id}", response_model=ImportSessionResponse)
def set_row_field(
    row_id: str,
    request: FieldEditRequest,
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    try:
        controller.set_field(row_id, request.field, request.value)
    except ImportPipelineError as exc:
        raise _to_http_error(exc) from exc
    return _to_session_response(controller)


@router.post("/{session_id}/rows/{row_id}/save", response_model=ImportSessionResponse)
def save_row_edits(
    row_id: str,
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    try:
        controller.save_row(row_id)
    except ImportPipelineError as exc:
        raise _to_http_error(exc) from exc
    return _to_session_response(controller)


@router.post("/{session_id}/rows/{row_id}/discard", response_model=ImportSessionResponse)
def discard_row_edits(
    row_id: str,
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    try:
        controller.discard_row(row_id)
    except ImportPipelineError as exc:
        raise _to_http_error(exc) from exc
    return _to_session_response(controller)


@router.post("/{session_id}/rows/{row_id}/revalidate", response_model=ImportSessionResponse)
def revalidate_row(
    row_id: str,
    controller: ImportSessionController = Depends(get_import_session),
) -> ImportSessionResponse:
    """
    Re-check a corrected error row; it moves to the valid rows if it passes.
    """

    try:
        controller.revalidate_row(row_id)
    except ImportPipelineError as exc:
        raise _to_http_error(exc) from exc
    except ConnectorRequestError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _to_session_response(controller)


@router.get("/{session_id}/template")
def download_import_template(
    controller: ImportSessionController = Depends(get_import_session),
) -> Response:
    try:
        content = controller.fetch_template()
    except ConnectorRequestError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return Response(
        content=content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{controller.template_file_name()}"'},
    )


@router.get("/{session_id}/notifications", response_model=list[NotificationResponse])
def drain_notifications(
    controller: ImportSessionController = Depends(get_import_session),
) -> list[NotificationResponse]:
    return [
        NotificationResponse(level=item.level, message=item.message)
        for item in controller.drain_notifications()
    ]
