"""
Validate (and optionally commit) an import file from CLI.
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path

from bulk_import.connectors.base import ConnectorRequestError
from bulk_import.domain.errors import ImportPipelineError
from bulk_import.domain.import_report import ValidationReport
from bulk_import.domain.import_session import ImportStage
from bulk_import.logging_utils import configure_logging
from bulk_import.services.import_session_controller import build_import_session_controller


def _summarize(report: ValidationReport | None) -> dict | None:
    if report is None:
        return None
    return {
        "total_records": report.total_records,
        "success_count": report.success_count,
        "failed_count": report.failed_count,
        "errors": [
            {
                "row": error.source_row_index + 1,
                "messages": list(error.messages),
                "field_errors": error.field_errors,
            }
            for error in report.errors
        ],
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate a bulk import file against the import backend.")
    parser.add_argument("path", nargs="?", type=Path, default=None, help="CSV or Excel file to validate.")
    parser.add_argument(
        "--commit",
        action="store_true",
        help="Commit the valid rows after validation.",
    )
    parser.add_argument(
        "--template",
        dest="template_dir",
        type=Path,
        default=None,
        help="Only download the blank import template into this directory.",
    )
    args = parser.parse_args(argv)
    if args.path is None and args.template_dir is None:
        parser.error("path is required unless --template is given")

    configure_logging(os.getenv("LOG_LEVEL", "WARNING"))
    controller = build_import_session_controller()

    if args.template_dir is not None:
        try:
            target = controller.download_template(args.template_dir)
        except ConnectorRequestError as exc:
            print(json.dumps({"error": str(exc)}, indent=2))
            return 1
        print(json.dumps({"template": str(target)}, indent=2))
        return 0

    try:
        controller.select_file(name=args.path.name, content=args.path.read_bytes())
        session = controller.submit_for_validation()
        if args.commit and session.can_commit:
            session = controller.commit()
    except ImportPipelineError as exc:
        print(json.dumps({"error": str(exc)}, indent=2))
        return 2

    payload = {
        "stage": session.stage,
        "error": session.error_message,
        "validation": _summarize(session.report if session.commit_result is None else None),
        "commit": _summarize(session.commit_result),
        "notifications": [item.message for item in controller.drain_notifications()],
    }
    print(json.dumps(payload, indent=2))
    return 0 if session.stage in (ImportStage.REVIEWING, ImportStage.COMPLETE) else 1


if __name__ == "__main__":
    raise SystemExit(main())
