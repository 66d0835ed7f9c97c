"""
bulk_import/validators/file_intake.py

Type and size checks applied to a selected file before anything else runs.
"""

from __future__ import annotations

from pathlib import Path

from bulk_import.config import ImportIntakeSettings
from bulk_import.domain.errors import IntakeRejectedError
from bulk_import.domain.import_session import ImportFile

# Browsers and HTTP clients often send a generic type for spreadsheets.
GENERIC_MIME_KINDS = {"", "application/octet-stream"}

EXTENSION_MIME_KINDS = {
    ".csv": "text/csv",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class FileIntakeValidator:
    """
    Accepts CSV and spreadsheet files up to the configured size.
    """

    def __init__(self, settings: ImportIntakeSettings | None = None) -> None:
        self._settings = settings or ImportIntakeSettings()

    @property
    def max_file_size_mb(self) -> float:
        return self._settings.max_file_size_mb

    @property
    def max_file_size_bytes(self) -> int:
        return self._settings.max_file_size_bytes

    def accept(self, *, name: str, content: bytes, mime_kind: str | None = None) -> ImportFile:
        """
        Return an ``ImportFile`` or raise ``IntakeRejectedError``.
        """

        file_name = (name or "").strip()
        resolved_kind = self._resolve_mime_kind(file_name, mime_kind)
        if resolved_kind not in self._settings.accepted_mime_kinds:
            raise IntakeRejectedError(
                code=IntakeRejectedError.UNSUPPORTED_TYPE,
                message="Please select a CSV or Excel file.",
            )

        if not content:
            raise IntakeRejectedError(
                code=IntakeRejectedError.EMPTY_FILE,
                message="The selected file is empty.",
            )

        if len(content) > self._settings.max_file_size_bytes:
            raise IntakeRejectedError(
                code=IntakeRejectedError.FILE_TOO_LARGE,
                message=f"File size must be less than {self._settings.max_file_size_mb:g}MB.",
            )

        return ImportFile(
            name=file_name or "upload",
            byte_size=len(content),
            mime_kind=resolved_kind,
            content=content,
        )

    def _resolve_mime_kind(self, file_name: str, mime_kind: str | None) -> str:
        declared = (mime_kind or "").split(";", 1)[0].strip().lower()
        if declared not in GENERIC_MIME_KINDS:
            return declared

        extension = Path(file_name).suffix.lower()
        if extension not in self._settings.accepted_extensions:
            return declared
        return EXTENSION_MIME_KINDS.get(extension, declared)
