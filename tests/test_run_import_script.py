"""
tests/test_run_import_script.py

Pytest tests for the run_import CLI with the controller factory patched to an
in-memory backend.

Coverage
--------
- Template download without a file argument
- Missing file argument when no template directory is given
- Validate and commit of a file on disk
"""

from __future__ import annotations

import json

import pytest

from bulk_import.services.import_session_controller import ImportSessionController
from scripts import run_import


@pytest.fixture()
def patched_controller(monkeypatch, fake_backend) -> ImportSessionController:
    controller = ImportSessionController(backend=fake_backend, page_size=10)
    monkeypatch.setattr(run_import, "build_import_session_controller", lambda: controller)
    return controller


class TestRunImport:
    def test_template_only_needs_no_path(self, patched_controller, tmp_path, capsys) -> None:
        exit_code = run_import.main(["--template", str(tmp_path)])

        assert exit_code == 0
        target = tmp_path / "customer_template.xlsx"
        assert target.read_bytes().startswith(b"PK")
        assert json.loads(capsys.readouterr().out) == {"template": str(target)}

    def test_path_required_without_template(self, patched_controller) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run_import.main([])
        assert exc_info.value.code == 2

    def test_validate_and_commit_file(self, patched_controller, fake_backend, tmp_path, capsys) -> None:
        source = tmp_path / "customers.csv"
        source.write_bytes(b"internet_id,first_name\nNET-000,First0\n")

        exit_code = run_import.main([str(source), "--commit"])

        assert exit_code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["stage"] == "complete"
        assert payload["commit"]["success_count"] == 7
        assert len(fake_backend.committed_batches) == 1
