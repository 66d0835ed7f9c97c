"""
bulk_import/services/import_session_controller.py

Service layer driving one bulk import operation.

The controller owns the canonical ``ImportSession`` and is the only place
that changes its stage. Every change goes through the pure functions in
``bulk_import.domain.transitions``; this class adds the backend calls, the
in-flight guard, logging and user-facing notifications.

Gateway failures are resolved here by the matching backward transition:

    validation failure -> initial   (file kept for an immediate retry)
    commit failure     -> reviewing (overlay kept)

so the session never stays in ``uploading`` or ``processing``.

A reset that lands while a call is in flight wins. The late answer is
logged and dropped, and the operator gets an info notification.
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from bulk_import.config import (
    ImportBackendSettings,
    get_import_backend_settings,
    get_import_intake_settings,
    get_result_browser_settings,
)
from bulk_import.connectors.base import ConnectorRequestError
from bulk_import.connectors.import_backend import ImportBackend, get_import_backend
from bulk_import.domain import transitions
from bulk_import.domain.commit_merge import build_merge_set
from bulk_import.domain.errors import InvalidTransitionError, IntakeRejectedError, UnknownRowError
from bulk_import.domain.field_registry import FieldRegistry, ReferenceData, build_customer_field_registry
from bulk_import.domain.import_report import RowData, ValidationReport
from bulk_import.domain.import_session import (
    ImportSession,
    ImportStage,
    Notification,
    NotificationLevel,
)
from bulk_import.domain.result_browser import (
    RenderedRow,
    ResultPage,
    page_window,
    paginate,
    render_rows,
)
from bulk_import.logging_utils import log_event
from bulk_import.validators.file_intake import FileIntakeValidator

logger = logging.getLogger(__name__)


class ImportSessionController:
    """
    State machine for upload -> review/correct -> commit of one import file.
    """

    def __init__(
        self,
        *,
        backend: ImportBackend,
        intake: FileIntakeValidator | None = None,
        registry: FieldRegistry | None = None,
        page_size: int = 10,
        entity_name: str = "Customer",
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self._backend = backend
        self._intake = intake or FileIntakeValidator()
        self._registry = registry or build_customer_field_registry()
        self._entity_name = entity_name
        self._session = transitions.new_session(page_size)
        self._reference_data = ReferenceData.empty()
        self._notifications: list[Notification] = []
        self._lock = threading.RLock()
        self._in_flight = False

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def session(self) -> ImportSession:
        return self._session

    @property
    def registry(self) -> FieldRegistry:
        return self._registry

    @property
    def reference_data(self) -> ReferenceData:
        return self._reference_data

    @property
    def entity_name(self) -> str:
        return self._entity_name

    @property
    def max_file_size_mb(self) -> float:
        return self._intake.max_file_size_mb

    @property
    def max_file_size_bytes(self) -> int:
        return self._intake.max_file_size_bytes

    @property
    def is_busy(self) -> bool:
        return self._in_flight or self._session.is_busy

    def drain_notifications(self) -> list[Notification]:
        with self._lock:
            drained = list(self._notifications)
            self._notifications.clear()
        return drained

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open(self) -> ReferenceData:
        """
        Load lookup options for enumerated fields once per session open.

        A lookup failure leaves the pickers empty; the import itself can
        still proceed.
        """

        with self._gateway_call():
            try:
                reference_data = self._backend.fetch_reference_data()
            except ConnectorRequestError as exc:
                logger.warning(
                    "Failed to fetch lookup options session_id=%s error=%s",
                    self.session_id,
                    exc,
                )
                self._notify(NotificationLevel.WARNING, "Dropdown options could not be loaded.")
                return self._reference_data

        with self._lock:
            self._reference_data = reference_data
        log_event(
            logger,
            logging.INFO,
            "import_reference_data_loaded",
            session_id=self.session_id,
            lookups=list(reference_data.lookup_names),
        )
        return reference_data

    def reset(self) -> ImportSession:
        """
        Return to the initial stage unconditionally.
        """

        with self._lock:
            return self._apply(transitions.reset(self._session), event="import_reset")

    # ------------------------------------------------------------------
    # Intake and validation
    # ------------------------------------------------------------------

    def select_file(self, *, name: str, content: bytes, mime_kind: str | None = None) -> ImportSession:
        with self._lock:
            if self._session.stage != ImportStage.INITIAL:
                raise InvalidTransitionError(
                    f"Cannot select a file while import is '{self._session.stage}'."
                )
            try:
                import_file = self._intake.accept(name=name, content=content, mime_kind=mime_kind)
            except IntakeRejectedError as exc:
                logger.info(
                    "Import file rejected session_id=%s name=%r code=%s",
                    self.session_id,
                    name,
                    exc.code,
                )
                self._notify(NotificationLevel.ERROR, str(exc))
                raise
            return self._apply(
                transitions.select_file(self._session, import_file),
                event="import_file_selected",
                file_name=import_file.name,
                byte_size=import_file.byte_size,
                mime_kind=import_file.mime_kind,
            )

    def submit_for_validation(self) -> ImportSession:
        """
        Upload the selected file and move to review on success.
        """

        with self._gateway_call():
            with self._lock:
                uploading = transitions.start_upload(self._session)
                import_file = uploading.file
                if import_file is None:
                    raise InvalidTransitionError("No file is selected for validation.")
                self._apply(uploading, event="import_upload_started")

            try:
                report = self._backend.validate_file(import_file, on_progress=self._record_progress)
            except ConnectorRequestError as exc:
                return self._fail_validation(str(exc) or "Failed to validate file")
            except Exception:
                self._fail_validation("Failed to validate file")
                raise

            with self._lock:
                if self._discard_stale_result(
                    ImportStage.UPLOADING,
                    event="import_validation_result_discarded",
                    message="The import was reset before validation finished. The result was not applied.",
                    total_records=report.total_records,
                ):
                    return self._session
                session = self._apply(
                    transitions.validation_succeeded(self._session, report),
                    event="import_validated",
                    total_records=report.total_records,
                    success_count=report.success_count,
                    failed_count=report.failed_count,
                )
            self._check_report_consistency(report, context="validation")
            if report.failed_count > 0:
                self._notify(
                    NotificationLevel.WARNING,
                    f"Validation complete: {report.success_count} valid, {report.failed_count} errors found",
                )
            else:
                self._notify(
                    NotificationLevel.SUCCESS,
                    f"All {report.total_records} records are valid and ready for import",
                )
            return session

    def _record_progress(self, percent: int) -> None:
        with self._lock:
            if self._session.stage == ImportStage.UPLOADING:
                self._session = transitions.record_upload_progress(self._session, percent)

    def _fail_validation(self, message: str) -> ImportSession:
        with self._lock:
            if self._discard_stale_result(
                ImportStage.UPLOADING,
                event="import_validation_failure_discarded",
                message="The import was reset before validation finished.",
                error=message,
            ):
                return self._session
            session = self._apply(
                transitions.validation_failed(self._session, message),
                event="import_validation_failed",
                level=logging.WARNING,
                error=message,
            )
        self._notify(NotificationLevel.ERROR, message)
        return session

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def merge_set(self) -> list[RowData]:
        report = self._require_report()
        return build_merge_set(report, self._session.overlay, self._registry)

    def commit(self) -> ImportSession:
        """
        Send the merged valid rows to the backend as one batch.
        """

        with self._gateway_call():
            with self._lock:
                self._apply(transitions.start_commit(self._session), event="import_commit_started")
                rows = self.merge_set()
                source_file = self._session.file

            try:
                result = self._backend.commit_rows(rows, source_file=source_file)
            except ConnectorRequestError as exc:
                return self._fail_commit(str(exc) or "Failed to process validated data")
            except Exception:
                self._fail_commit("Failed to process validated data")
                raise

            with self._lock:
                if self._discard_stale_result(
                    ImportStage.PROCESSING,
                    event="import_commit_result_discarded",
                    message=(
                        f"The import was reset during the commit. The server still processed "
                        f"{result.success_count} out of {len(rows)} {self._entity_name.lower()}s."
                    ),
                    submitted=len(rows),
                    success_count=result.success_count,
                    failed_count=result.failed_count,
                ):
                    return self._session
                session = self._apply(
                    transitions.commit_succeeded(self._session, result),
                    event="import_committed",
                    submitted=len(rows),
                    success_count=result.success_count,
                    failed_count=result.failed_count,
                )
            self._check_report_consistency(result, context="commit")
            entity = self._entity_name.lower()
            self._notify(
                NotificationLevel.SUCCESS if result.failed_count == 0 else NotificationLevel.WARNING,
                f"Successfully processed {result.success_count} out of {len(rows)} {entity}s",
            )
            return session

    def _fail_commit(self, message: str) -> ImportSession:
        with self._lock:
            if self._discard_stale_result(
                ImportStage.PROCESSING,
                event="import_commit_failure_discarded",
                message="The import was reset before the commit finished.",
                error=message,
            ):
                return self._session
            session = self._apply(
                transitions.commit_failed(self._session, message),
                event="import_commit_failed",
                level=logging.WARNING,
                error=message,
            )
        self._notify(NotificationLevel.ERROR, message)
        return session

    # ------------------------------------------------------------------
    # Result browsing
    # ------------------------------------------------------------------

    def switch_view(self, view: str) -> ImportSession:
        with self._lock:
            return self._apply(transitions.switch_view(self._session, view))

    def go_to_page(self, page: int) -> ImportSession:
        with self._lock:
            return self._apply(transitions.go_to_page(self._session, page))

    def next_page(self) -> ImportSession:
        return self.go_to_page(self._session.page + 1)

    def previous_page(self) -> ImportSession:
        return self.go_to_page(self._session.page - 1)

    def current_page(self) -> ResultPage:
        session = self._session
        return paginate(
            transitions.active_rows(session),
            view=session.active_view,
            page=session.page,
            page_size=session.page_size,
        )

    def render_current_page(self) -> tuple[ResultPage, list[RenderedRow]]:
        result_page = self.current_page()
        rendered = render_rows(
            result_page.rows,
            overlay=self._session.overlay,
            registry=self._registry,
            reference_data=self._reference_data,
        )
        return result_page, rendered

    def page_numbers(self) -> list[int]:
        result_page = self.current_page()
        return page_window(result_page.page, result_page.total_pages)

    def row_id_for_display_index(self, display_index: int) -> str:
        """
        Resolve the row shown as ``display_index`` in the active view.
        """

        for row in transitions.active_rows(self._session):
            if row.display_index == display_index:
                return row.row_id
        raise UnknownRowError(
            f"No row {display_index} in the '{self._session.active_view}' view."
        )

    # ------------------------------------------------------------------
    # Row corrections
    # ------------------------------------------------------------------

    def begin_edit(self, row_id: str) -> ImportSession:
        with self._lock:
            self._require_row(row_id)
            return self._apply(
                transitions.update_overlay(self._session, self._session.overlay.begin_edit(row_id))
            )

    def set_field(self, row_id: str, field_name: str, value: Any) -> ImportSession:
        with self._lock:
            self._require_row(row_id)
            accepted = self._registry.coerce_edit(field_name, value, self._reference_data)
            overlay = self._session.overlay.set_field(row_id, field_name, accepted)
            return self._apply(transitions.update_overlay(self._session, overlay))

    def save_row(self, row_id: str) -> ImportSession:
        with self._lock:
            self._require_row(row_id)
            session = self._apply(
                transitions.update_overlay(self._session, self._session.overlay.save(row_id))
            )
        self._notify(NotificationLevel.SUCCESS, "Row saved")
        return session

    def discard_row(self, row_id: str) -> ImportSession:
        with self._lock:
            return self._apply(
                transitions.update_overlay(self._session, self._session.overlay.discard(row_id))
            )

    def effective_row(self, row_id: str) -> RowData:
        original = self._require_row(row_id)
        return self._session.overlay.effective_row(row_id, original)

    def revalidate_row(self, row_id: str) -> ImportSession:
        """
        Re-check a corrected error row and promote it into the valid rows if it passes.
        """

        with self._gateway_call():
            with self._lock:
                if self._session.stage != ImportStage.REVIEWING:
                    raise InvalidTransitionError(
                        f"Cannot re-validate rows while import is '{self._session.stage}'."
                    )
                report = self._require_report()
                error = report.find_error(row_id)
                if error is None:
                    raise UnknownRowError(f"Row {row_id} is not an error row.")
                row_data = self._session.overlay.effective_row(row_id, error.data)

            try:
                outcome = self._backend.validate_row(row_data)
            except ConnectorRequestError as exc:
                logger.warning(
                    "Row re-validation failed session_id=%s row_id=%s error=%s",
                    self.session_id,
                    row_id,
                    exc,
                )
                self._notify(NotificationLevel.ERROR, str(exc) or "Failed to save changes")
                raise

            with self._lock:
                if self._discard_stale_result(
                    ImportStage.REVIEWING,
                    event="import_row_revalidation_discarded",
                    message="The import was reset before the row check finished.",
                    row_id=row_id,
                    passed=outcome.passed,
                ):
                    return self._session
                report = self._require_report()
                overlay = self._session.overlay.save(row_id)
                if outcome.passed:
                    updated = report.with_error_promoted(row_id)
                else:
                    updated = report.with_error_messages(
                        row_id,
                        messages=outcome.messages,
                        field_errors=outcome.field_errors,
                    )
                session = transitions.update_overlay(self._session, overlay)
                session = self._apply(
                    transitions.replace_report(session, updated),
                    event="import_row_revalidated",
                    row_id=row_id,
                    passed=outcome.passed,
                )

            if outcome.passed:
                self._notify(NotificationLevel.SUCCESS, "Row validation passed")
            else:
                self._notify(NotificationLevel.WARNING, "Row still has validation errors")
            return session

    # ------------------------------------------------------------------
    # Template download
    # ------------------------------------------------------------------

    def template_file_name(self) -> str:
        return f"{self._entity_name.lower()}_template.xlsx"

    def fetch_template(self) -> bytes:
        try:
            content = self._backend.download_template()
        except ConnectorRequestError:
            self._notify(NotificationLevel.ERROR, "Failed to download template")
            raise
        self._notify(NotificationLevel.SUCCESS, f"{self._entity_name} template downloaded successfully")
        return content

    def download_template(self, destination_dir: Path) -> Path:
        """
        Save the backend's blank template into ``destination_dir``.
        """

        content = self.fetch_template()
        destination_dir.mkdir(parents=True, exist_ok=True)
        target = destination_dir / self.template_file_name()
        target.write_bytes(content)
        return target

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _gateway_call(self) -> Iterator[None]:
        with self._lock:
            if self._in_flight:
                raise InvalidTransitionError("Another request for this import is still in progress.")
            self._in_flight = True
        try:
            yield
        finally:
            with self._lock:
                self._in_flight = False

    def _apply(
        self,
        session: ImportSession,
        *,
        event: str | None = None,
        level: int = logging.INFO,
        **fields: Any,
    ) -> ImportSession:
        previous_stage = self._session.stage
        self._session = session
        if event is not None:
            log_event(
                logger,
                level,
                event,
                session_id=self.session_id,
                from_stage=previous_stage,
                to_stage=session.stage,
                **fields,
            )
        return session

    def _discard_stale_result(
        self,
        expected_stage: str,
        *,
        event: str,
        message: str,
        **fields: Any,
    ) -> bool:
        """
        Log and drop a backend answer that arrived after the session moved on.

        Call with the lock held. Returns True when the answer was dropped.
        """

        if self._session.stage == expected_stage:
            return False
        log_event(
            logger,
            logging.WARNING,
            event,
            session_id=self.session_id,
            expected_stage=expected_stage,
            stage=self._session.stage,
            **fields,
        )
        self._notify(NotificationLevel.INFO, message)
        return True

    def _notify(self, level: str, message: str) -> None:
        with self._lock:
            self._notifications.append(Notification(level=level, message=message))

    def _require_report(self) -> ValidationReport:
        report = self._session.report
        if report is None:
            raise InvalidTransitionError("No validation report is loaded.")
        return report

    def _require_row(self, row_id: str) -> RowData:
        original = self._require_report().original_data(row_id)
        if original is None:
            raise UnknownRowError(f"Unknown row id '{row_id}'.")
        return original

    def _check_report_consistency(self, report: ValidationReport, *, context: str) -> None:
        issues = report.consistency_issues()
        if not issues:
            return
        logger.warning(
            "Inconsistent %s report session_id=%s issues=%s",
            context,
            self.session_id,
            "; ".join(issues),
        )
        self._notify(NotificationLevel.WARNING, "The server report counts do not match its rows.")


def build_import_session_controller(
    *,
    backend: ImportBackend | None = None,
    backend_settings: ImportBackendSettings | None = None,
) -> ImportSessionController:
    """
    Build a controller with env-driven settings.
    """

    backend_settings = backend_settings or get_import_backend_settings()
    return ImportSessionController(
        backend=backend or get_import_backend(),
        intake=FileIntakeValidator(get_import_intake_settings()),
        page_size=get_result_browser_settings().page_size,
        entity_name=backend_settings.entity_name,
    )
