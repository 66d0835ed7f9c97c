"""
bulk_import/domain/import_session.py

Aggregate state of one import operation.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

from bulk_import.domain.correction_overlay import CorrectionOverlay
from bulk_import.domain.import_report import ValidationReport


class ImportStage:
    INITIAL = "initial"
    UPLOADING = "uploading"
    REVIEWING = "reviewing"
    PROCESSING = "processing"
    COMPLETE = "complete"


IN_FLIGHT_STAGES = frozenset({ImportStage.UPLOADING, ImportStage.PROCESSING})


class ResultView:
    VALID = "valid"
    INVALID = "invalid"


class NotificationLevel:
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """
    One non-blocking, user-facing message.
    """

    level: str
    message: str


@dataclass(frozen=True)
class ImportFile:
    """
    The spreadsheet selected for import.
    """

    name: str
    byte_size: int
    mime_kind: str
    content: bytes = field(default=b"", repr=False, compare=False)

    @property
    def fingerprint(self) -> str:
        return hashlib.sha256(self.content).hexdigest()

    def describe(self) -> dict[str, object]:
        return {
            "name": self.name,
            "byteSize": self.byte_size,
            "mimeKind": self.mime_kind,
        }


@dataclass(frozen=True)
class ImportSession:
    """
    Canonical state of one import operation; replaced, never mutated.
    """

    page_size: int
    stage: str = ImportStage.INITIAL
    file: ImportFile | None = None
    report: ValidationReport | None = None
    overlay: CorrectionOverlay = field(default_factory=CorrectionOverlay)
    active_view: str = ResultView.INVALID
    page: int = 1
    upload_progress: int = 0
    commit_result: ValidationReport | None = None
    error_message: str | None = None

    @property
    def is_busy(self) -> bool:
        return self.stage in IN_FLIGHT_STAGES

    @property
    def can_submit(self) -> bool:
        return self.stage == ImportStage.INITIAL and self.file is not None

    @property
    def can_commit(self) -> bool:
        return (
            self.stage == ImportStage.REVIEWING
            and self.report is not None
            and self.report.success_count > 0
        )
