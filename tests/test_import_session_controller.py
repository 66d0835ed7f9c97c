"""
tests/test_import_session_controller.py

Pytest unit tests for ImportSessionController.

The backend is an in-memory ImportBackend double; no network, no files
except the template download written to tmp_path.

Coverage
--------
- Upload -> review with the default view chosen from the report
- Edits kept across view switches and excluded from the batch for error rows
- Commit merge of valid rows with their deltas applied
- Final summary and stage after a partial commit
- Gateway failures rolling back to the previous stable stage
- Per-row re-validation promoting or keeping an error row
- Stage guards, in-flight guard and intake rejection
- Notifications and lookup loading
"""

from __future__ import annotations

import threading

import pytest

from bulk_import.connectors.base import ConnectorRequestError
from bulk_import.connectors.import_backend import RowCheckResult
from bulk_import.domain.errors import (
    FieldValueError,
    IntakeRejectedError,
    InvalidTransitionError,
    RowNotInEditModeError,
    UnknownRowError,
)
from bulk_import.domain.import_session import ImportStage, NotificationLevel, ResultView
from bulk_import.services.import_session_controller import ImportSessionController

CSV_BYTES = b"internet_id,first_name\nNET-000,First0\n"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _controller(backend) -> ImportSessionController:
    controller = ImportSessionController(backend=backend, page_size=10)
    controller.open()
    return controller


@pytest.fixture()
def controller(fake_backend) -> ImportSessionController:
    return _controller(fake_backend)


@pytest.fixture()
def reviewing(controller) -> ImportSessionController:
    controller.select_file(name="customers.csv", content=CSV_BYTES, mime_kind="text/csv")
    controller.submit_for_validation()
    controller.drain_notifications()
    return controller


# ---------------------------------------------------------------------------
# Upload and validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_ten_rows_default_to_error_view_with_three_rows(self, reviewing) -> None:
        session = reviewing.session
        assert session.stage == ImportStage.REVIEWING
        assert session.active_view == ResultView.INVALID
        assert session.upload_progress == 100

        result_page = reviewing.current_page()
        assert result_page.total_rows == 3
        assert [row.display_index for row in result_page.rows] == [2, 5, 9]

    def test_all_valid_report_defaults_to_valid_view(self, backend_factory, report_factory, row_factory) -> None:
        backend = backend_factory(report=report_factory(valid_rows=[row_factory(0), row_factory(1)]))
        controller = _controller(backend)
        controller.select_file(name="customers.csv", content=CSV_BYTES)
        controller.submit_for_validation()

        assert controller.session.active_view == ResultView.VALID
        messages = [item.message for item in controller.drain_notifications()]
        assert "All 2 records are valid and ready for import" in messages

    def test_mixed_report_notifies_counts(self, controller) -> None:
        controller.select_file(name="customers.csv", content=CSV_BYTES)
        controller.submit_for_validation()

        notifications = controller.drain_notifications()
        assert notifications[-1].level == NotificationLevel.WARNING
        assert notifications[-1].message == "Validation complete: 7 valid, 3 errors found"

    def test_gateway_failure_returns_to_initial_and_keeps_file(
        self, backend_factory, ten_rows, gateway_error
    ) -> None:
        backend = backend_factory(report=ten_rows, validate_error=gateway_error)
        controller = _controller(backend)
        controller.select_file(name="customers.csv", content=CSV_BYTES)

        session = controller.submit_for_validation()

        assert session.stage == ImportStage.INITIAL
        assert session.file is not None
        assert session.file.name == "customers.csv"
        assert session.error_message == "import_backend: request timed out."
        assert session.can_submit

        backend.validate_error = None
        retried = controller.submit_for_validation()
        assert retried.stage == ImportStage.REVIEWING
        assert retried.error_message is None
        assert len(backend.validated_files) == 2

    def test_unexpected_failure_rolls_back_then_propagates(self, backend_factory, ten_rows) -> None:
        backend = backend_factory(report=ten_rows, validate_error=KeyError("boom"))
        controller = _controller(backend)
        controller.select_file(name="customers.csv", content=CSV_BYTES)

        with pytest.raises(KeyError):
            controller.submit_for_validation()

        assert controller.session.stage == ImportStage.INITIAL
        assert not controller.is_busy

    def test_submit_rejected_outside_initial(self, reviewing) -> None:
        with pytest.raises(InvalidTransitionError):
            reviewing.submit_for_validation()

    def test_submit_requires_file(self, controller) -> None:
        with pytest.raises(InvalidTransitionError):
            controller.submit_for_validation()

    def test_rejected_file_causes_no_transition(self, controller) -> None:
        with pytest.raises(IntakeRejectedError) as exc_info:
            controller.select_file(name="notes.txt", content=b"hello", mime_kind="text/plain")

        assert exc_info.value.code == IntakeRejectedError.UNSUPPORTED_TYPE
        assert controller.session.stage == ImportStage.INITIAL
        assert controller.session.file is None
        assert controller.drain_notifications()[-1].level == NotificationLevel.ERROR

    def test_reset_during_validation_drops_late_report(self, controller, fake_backend) -> None:
        original = fake_backend.validate_file

        def reset_then_answer(import_file, *, on_progress=None):
            controller.reset()
            return original(import_file, on_progress=on_progress)

        fake_backend.validate_file = reset_then_answer
        controller.select_file(name="customers.csv", content=CSV_BYTES)

        session = controller.submit_for_validation()

        assert session.stage == ImportStage.INITIAL
        assert session.file is None
        assert session.report is None
        assert session.upload_progress == 0
        assert controller.drain_notifications()[-1].level == NotificationLevel.INFO


# ---------------------------------------------------------------------------
# Corrections
# ---------------------------------------------------------------------------


class TestCorrections:
    def test_edit_survives_view_switches(self, reviewing) -> None:
        row_id = reviewing.row_id_for_display_index(2)
        reviewing.begin_edit(row_id)
        reviewing.set_field(row_id, "area_id", "A-12")
        reviewing.save_row(row_id)

        assert reviewing.effective_row(row_id)["area_id"] == "A-12"

        reviewing.switch_view(ResultView.VALID)
        reviewing.switch_view(ResultView.INVALID)

        assert reviewing.effective_row(row_id)["area_id"] == "A-12"
        _, rendered = reviewing.render_current_page()
        edited = next(row for row in rendered if row.row_id == row_id)
        area = next(cell for cell in edited.cells if cell.field == "area_id")
        assert area.changed
        assert area.display == "Riverside"

    def test_set_field_requires_edit_mode(self, reviewing) -> None:
        row_id = reviewing.row_id_for_display_index(2)
        with pytest.raises(RowNotInEditModeError):
            reviewing.set_field(row_id, "first_name", "Ada")

    def test_unknown_lookup_value_is_rejected(self, reviewing) -> None:
        row_id = reviewing.row_id_for_display_index(2)
        reviewing.begin_edit(row_id)
        with pytest.raises(FieldValueError) as exc_info:
            reviewing.set_field(row_id, "area_id", "NOPE")
        assert exc_info.value.field == "area_id"

    def test_unknown_row_is_rejected(self, reviewing) -> None:
        with pytest.raises(UnknownRowError):
            reviewing.begin_edit("missing")
        with pytest.raises(UnknownRowError):
            reviewing.row_id_for_display_index(3)

    def test_discard_restores_original(self, reviewing) -> None:
        row_id = reviewing.row_id_for_display_index(5)
        original = reviewing.effective_row(row_id)
        reviewing.begin_edit(row_id)
        reviewing.set_field(row_id, "first_name", "Changed")
        reviewing.discard_row(row_id)

        assert reviewing.effective_row(row_id) == original
        assert not reviewing.session.overlay.is_editing(row_id)

    def test_save_does_not_promote(self, reviewing) -> None:
        row_id = reviewing.row_id_for_display_index(2)
        reviewing.begin_edit(row_id)
        reviewing.set_field(row_id, "area_id", "A-12")
        reviewing.save_row(row_id)

        assert reviewing.session.report.failed_count == 3
        assert reviewing.session.report.find_error(row_id) is not None


# ---------------------------------------------------------------------------
# Re-validation
# ---------------------------------------------------------------------------


class TestRevalidation:
    def test_passing_row_is_promoted_with_same_id(self, reviewing, fake_backend) -> None:
        row_id = reviewing.row_id_for_display_index(2)
        reviewing.begin_edit(row_id)
        reviewing.set_field(row_id, "area_id", "A-12")

        session = reviewing.revalidate_row(row_id)

        assert fake_backend.checked_rows[-1]["area_id"] == "A-12"
        assert session.report.success_count == 8
        assert session.report.failed_count == 2
        assert session.report.find_valid_row(row_id) is not None
        assert session.report.is_consistent
        assert not session.overlay.is_editing(row_id)
        assert reviewing.merge_set()[-1]["area_id"] == "A-12"
        assert reviewing.drain_notifications()[-1].message == "Row validation passed"

    def test_failing_row_gets_new_messages(self, reviewing, fake_backend) -> None:
        fake_backend.row_results = [
            RowCheckResult(
                passed=False,
                messages=("Email is invalid",),
                field_errors={"email": "Email is invalid"},
            )
        ]
        row_id = reviewing.row_id_for_display_index(2)
        reviewing.begin_edit(row_id)
        reviewing.set_field(row_id, "area_id", "A-12")

        session = reviewing.revalidate_row(row_id)

        error = session.report.find_error(row_id)
        assert error.messages == ("Email is invalid",)
        assert error.field_errors == {"email": "Email is invalid"}
        assert error.data["area_id"] == ""
        assert session.overlay.delta_for(row_id) == {"area_id": "A-12"}
        assert session.report.failed_count == 3
        assert reviewing.drain_notifications()[-1].message == "Row still has validation errors"

    def test_gateway_failure_keeps_row_and_raises(self, reviewing, fake_backend, gateway_error) -> None:
        fake_backend.row_results = [gateway_error]
        row_id = reviewing.row_id_for_display_index(2)

        with pytest.raises(ConnectorRequestError):
            reviewing.revalidate_row(row_id)

        assert reviewing.session.report.find_error(row_id) is not None
        assert not reviewing.is_busy

    def test_only_error_rows_can_be_revalidated(self, reviewing) -> None:
        reviewing.switch_view(ResultView.VALID)
        valid_id = reviewing.row_id_for_display_index(1)
        with pytest.raises(UnknownRowError):
            reviewing.revalidate_row(valid_id)

    def test_reset_during_row_check_drops_late_outcome(self, reviewing, fake_backend) -> None:
        row_id = reviewing.row_id_for_display_index(2)

        def reset_then_pass(row_data):
            reviewing.reset()
            return RowCheckResult(passed=True)

        fake_backend.validate_row = reset_then_pass

        session = reviewing.revalidate_row(row_id)

        assert session.stage == ImportStage.INITIAL
        assert session.report is None
        assert reviewing.drain_notifications()[-1].message == "The import was reset before the row check finished."


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------


class TestCommit:
    def test_merge_set_holds_valid_rows_with_deltas_only(self, reviewing, fake_backend) -> None:
        error_id = reviewing.row_id_for_display_index(2)
        reviewing.begin_edit(error_id)
        reviewing.set_field(error_id, "area_id", "A-12")
        reviewing.save_row(error_id)

        reviewing.switch_view(ResultView.VALID)
        valid_id = reviewing.row_id_for_display_index(3)
        reviewing.begin_edit(valid_id)
        reviewing.set_field(valid_id, "first_name", "  Grace  ")
        reviewing.save_row(valid_id)

        reviewing.commit()

        batch = fake_backend.committed_batches[-1]
        assert len(batch) == 7
        assert batch[2]["first_name"] == "Grace"
        assert {row["internet_id"] for row in batch} == {
            "NET-000",
            "NET-002",
            "NET-003",
            "NET-005",
            "NET-006",
            "NET-007",
            "NET-009",
        }

    def test_partial_commit_reports_final_summary(
        self, backend_factory, ten_rows, report_factory, row_factory
    ) -> None:
        commit_result = report_factory(
            valid_rows=[row_factory(index) for index in range(6)],
            errors=[{"row": 6, "errors": ["Duplicate internet id"], "data": row_factory(6)}],
            namespace="commit",
        )
        backend = backend_factory(report=ten_rows, commit_result=commit_result)
        controller = _controller(backend)
        controller.select_file(name="customers.csv", content=CSV_BYTES)
        controller.submit_for_validation()

        session = controller.commit()

        assert session.stage == ImportStage.COMPLETE
        assert session.commit_result.success_count == 6
        assert session.commit_result.failed_count == 1
        assert session.active_view == ResultView.INVALID
        assert not session.overlay.deltas
        assert controller.drain_notifications()[-1].message == "Successfully processed 6 out of 7 customers"

    def test_commit_failure_returns_to_review_and_keeps_edits(
        self, backend_factory, ten_rows, gateway_error
    ) -> None:
        backend = backend_factory(report=ten_rows, commit_error=gateway_error)
        controller = _controller(backend)
        controller.select_file(name="customers.csv", content=CSV_BYTES)
        controller.submit_for_validation()
        row_id = controller.row_id_for_display_index(2)
        controller.begin_edit(row_id)
        controller.set_field(row_id, "area_id", "A-12")

        session = controller.commit()

        assert session.stage == ImportStage.REVIEWING
        assert session.error_message == "import_backend: request timed out."
        assert session.overlay.delta_for(row_id) == {"area_id": "A-12"}
        assert len(backend.committed_batches) == 1

    def test_commit_rejected_without_valid_rows(self, backend_factory, report_factory, row_factory) -> None:
        backend = backend_factory(
            report=report_factory(errors=[{"row": 0, "errors": ["bad"], "data": row_factory(0)}])
        )
        controller = _controller(backend)
        controller.select_file(name="customers.csv", content=CSV_BYTES)
        controller.submit_for_validation()

        with pytest.raises(InvalidTransitionError):
            controller.commit()
        assert backend.committed_batches == []
        assert controller.session.stage == ImportStage.REVIEWING

    def test_reset_returns_to_initial(self, reviewing) -> None:
        session = reviewing.reset()
        assert session.stage == ImportStage.INITIAL
        assert session.file is None
        assert session.report is None

    def test_reset_during_commit_drops_late_result(self, reviewing, fake_backend, report_factory) -> None:
        def reset_then_answer(batch):
            reviewing.reset()
            return report_factory(valid_rows=batch, namespace="commit")

        fake_backend.commit_result = reset_then_answer

        session = reviewing.commit()

        assert session.stage == ImportStage.INITIAL
        assert session.commit_result is None
        assert len(fake_backend.committed_batches) == 1
        assert not reviewing.is_busy
        notification = reviewing.drain_notifications()[-1]
        assert notification.level == NotificationLevel.INFO
        assert notification.message == (
            "The import was reset during the commit. The server still processed 7 out of 7 customers."
        )

    def test_reset_during_failed_commit_keeps_initial(self, reviewing, fake_backend, gateway_error) -> None:
        def reset_then_fail(rows, *, source_file=None):
            reviewing.reset()
            raise gateway_error

        fake_backend.commit_rows = reset_then_fail

        session = reviewing.commit()

        assert session.stage == ImportStage.INITIAL
        assert session.error_message is None
        assert reviewing.drain_notifications()[-1].message == "The import was reset before the commit finished."


# ---------------------------------------------------------------------------
# Guards and collaborators
# ---------------------------------------------------------------------------


class TestGuards:
    def test_second_gateway_call_while_in_flight_is_rejected(self, backend_factory, ten_rows) -> None:
        entered = threading.Event()
        release = threading.Event()
        backend = backend_factory(report=ten_rows)
        original = backend.validate_file

        def slow_validate(import_file, *, on_progress=None):
            entered.set()
            release.wait(timeout=5)
            return original(import_file, on_progress=on_progress)

        backend.validate_file = slow_validate
        controller = _controller(backend)
        controller.select_file(name="customers.csv", content=CSV_BYTES)

        worker = threading.Thread(target=controller.submit_for_validation)
        worker.start()
        assert entered.wait(timeout=5)
        try:
            assert controller.is_busy
            with pytest.raises(InvalidTransitionError):
                controller.open()
        finally:
            release.set()
            worker.join(timeout=5)

        assert controller.session.stage == ImportStage.REVIEWING

    def test_lookup_failure_leaves_pickers_empty(self, backend_factory, ten_rows, gateway_error) -> None:
        backend = backend_factory(report=ten_rows, reference_error=gateway_error)
        controller = _controller(backend)

        assert not controller.reference_data
        assert controller.drain_notifications()[-1].level == NotificationLevel.WARNING

    def test_inconsistent_report_is_flagged(self, backend_factory, report_factory, row_factory) -> None:
        report = report_factory(valid_rows=[row_factory(0)], total_records=5)
        controller = _controller(backend_factory(report=report))
        controller.select_file(name="customers.csv", content=CSV_BYTES)
        controller.submit_for_validation()

        levels = [item.level for item in controller.drain_notifications()]
        assert NotificationLevel.WARNING in levels
        assert controller.session.stage == ImportStage.REVIEWING

    def test_template_saved_under_entity_name(self, controller, tmp_path) -> None:
        target = controller.download_template(tmp_path)
        assert target.name == "customer_template.xlsx"
        assert target.read_bytes().startswith(b"PK")
