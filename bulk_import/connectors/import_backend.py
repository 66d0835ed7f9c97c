"""
bulk_import/connectors/import_backend.py

Gateway interface to the import backend and its HTTP implementation.

The backend owns parsing and business-rule validation. This module only
speaks its contract: upload a file for validation, re-check one corrected
row, commit a batch, fetch lookup options, and download the blank template.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Mapping, Sequence

import requests
from pydantic import ValidationError

from bulk_import.config import (
    ExternalHTTPSettings,
    ImportBackendSettings,
    get_external_http_settings,
    get_import_backend_settings,
)
from bulk_import.connectors.base import BaseConnector, ConnectorRequestError
from bulk_import.domain.field_registry import LookupOption, ReferenceData
from bulk_import.domain.import_report import (
    ERROR_ROW_KIND,
    VALID_ROW_KIND,
    ReportRow,
    RowData,
    RowError,
    ValidationReport,
    make_row_id,
)
from bulk_import.domain.import_session import ImportFile
from bulk_import.schemas.validation_report import (
    LookupOptionPayload,
    ValidationReportPayload,
    coerce_lookup_id,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

UPLOAD_CHUNK_SIZE = 64 * 1024
VALIDATION_NAMESPACE = "validate"
COMMIT_NAMESPACE = "commit"


@dataclass(frozen=True)
class RowCheckResult:
    """
    Outcome of re-validating one corrected row.
    """

    passed: bool
    messages: tuple[str, ...] = ()
    field_errors: dict[str, str] = field(default_factory=dict)


class ImportBackend(ABC):
    """
    Collaborators the import workflow depends on.
    """

    @abstractmethod
    def validate_file(
        self,
        import_file: ImportFile,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> ValidationReport:
        """
        Upload the file and return the backend's validation report.
        """

    @abstractmethod
    def validate_row(self, row_data: Mapping[str, Any]) -> RowCheckResult:
        """
        Re-check one row after operator corrections.
        """

    @abstractmethod
    def commit_rows(
        self,
        rows: Sequence[RowData],
        *,
        source_file: ImportFile | None = None,
    ) -> ValidationReport:
        """
        Persist the merged batch and report which rows were stored.
        """

    @abstractmethod
    def fetch_reference_data(self) -> ReferenceData:
        """
        Return option lists for enumerated fields.
        """

    @abstractmethod
    def download_template(self) -> bytes:
        """
        Return the blank import template.
        """


class ProgressReader:
    """
    File-like request body that reports how much of it has been sent.
    """

    def __init__(self, content: bytes, on_progress: ProgressCallback | None = None) -> None:
        self._content = content
        self._offset = 0
        self._on_progress = on_progress
        self._last_percent = -1

    def __len__(self) -> int:
        return len(self._content)

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = len(self._content) - self._offset
        chunk = self._content[self._offset : self._offset + min(size, UPLOAD_CHUNK_SIZE)]
        self._offset += len(chunk)
        self._report()
        return chunk

    def _report(self) -> None:
        if self._on_progress is None:
            return
        total = len(self._content) or 1
        percent = round(self._offset * 100 / total)
        if percent != self._last_percent:
            self._last_percent = percent
            self._on_progress(percent)


def build_report(
    payload: ValidationReportPayload,
    *,
    namespace: str,
    fingerprint: str,
) -> ValidationReport:
    """
    Convert a report payload into the domain report, assigning row ids.
    """

    valid_rows = tuple(
        ReportRow(
            row_id=make_row_id(namespace=namespace, fingerprint=fingerprint, kind=VALID_ROW_KIND, index=index),
            data=dict(row),
        )
        for index, row in enumerate(payload.valid_rows)
    )

    errors: list[RowError] = []
    seen_ids: set[str] = set()
    for position, item in enumerate(payload.errors):
        row_id = make_row_id(namespace=namespace, fingerprint=fingerprint, kind=ERROR_ROW_KIND, index=item.row)
        if row_id in seen_ids:
            row_id = make_row_id(
                namespace=namespace,
                fingerprint=fingerprint,
                kind=f"{ERROR_ROW_KIND}-{position}",
                index=item.row,
            )
        seen_ids.add(row_id)
        errors.append(
            RowError(
                row_id=row_id,
                source_row_index=item.row,
                messages=tuple(item.errors) or tuple(item.field_errors.values()),
                data=dict(item.data),
                field_errors=dict(item.field_errors),
            )
        )

    return ValidationReport(
        total_records=payload.total_records,
        success_count=payload.success_count,
        failed_count=payload.failed_count,
        valid_rows=valid_rows,
        errors=tuple(errors),
    )


class BulkImportConnector(BaseConnector, ImportBackend):
    """
    HTTP client for the entity's bulk import endpoints.
    """

    def __init__(
        self,
        *,
        settings: ImportBackendSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="import_backend", http_settings=http_settings, session=session)
        self._settings = settings

    def validate_file(
        self,
        import_file: ImportFile,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> ValidationReport:
        headers = {
            **self._auth_headers(),
            "Content-Type": import_file.mime_kind,
            "X-File-Name": import_file.name,
        }
        payload = self._request_json(
            method="POST",
            url=self._entity_url("validate-bulk"),
            headers=headers,
            body_factory=lambda: ProgressReader(import_file.content, on_progress),
        )
        if on_progress is not None:
            on_progress(100)
        return build_report(
            self._parse_report(payload),
            namespace=VALIDATION_NAMESPACE,
            fingerprint=import_file.fingerprint,
        )

    def validate_row(self, row_data: Mapping[str, Any]) -> RowCheckResult:
        payload = self._parse_report(
            self._request_json(
                method="POST",
                url=self._entity_url("validate-single-row"),
                headers=self._auth_headers(),
                json_body={"rowData": dict(row_data)},
            )
        )
        if payload.success_count == 1:
            return RowCheckResult(passed=True)

        row_errors = payload.errors[0] if payload.errors else None
        if row_errors is None:
            return RowCheckResult(passed=False, messages=("Row still has validation errors.",))
        if row_errors.field_errors:
            return RowCheckResult(
                passed=False,
                messages=tuple(row_errors.field_errors.values()),
                field_errors=dict(row_errors.field_errors),
            )
        return RowCheckResult(passed=False, messages=tuple(row_errors.errors))

    def commit_rows(
        self,
        rows: Sequence[RowData],
        *,
        source_file: ImportFile | None = None,
    ) -> ValidationReport:
        body: dict[str, Any] = {self._settings.commit_rows_field: [dict(row) for row in rows]}
        if source_file is not None:
            body["sourceFile"] = source_file.describe()

        payload = self._request_json(
            method="POST",
            url=self._entity_url("bulk-add"),
            headers=self._auth_headers(),
            json_body=body,
            retryable=False,
        )
        fingerprint = source_file.fingerprint if source_file is not None else "batch"
        return build_report(
            self._parse_report(payload),
            namespace=COMMIT_NAMESPACE,
            fingerprint=fingerprint,
        )

    def fetch_reference_data(self) -> ReferenceData:
        payload = self._request_json(
            method="GET",
            url=self._absolute_url(self._settings.reference_data_path),
            headers=self._auth_headers(),
        )
        if not isinstance(payload, dict):
            raise ConnectorRequestError(f"{self.source}: reference data must be a JSON object.")

        lookups: dict[str, list[LookupOption]] = {}
        for lookup_name, raw_options in payload.items():
            if not isinstance(raw_options, list):
                continue
            options: list[LookupOption] = []
            for raw in raw_options:
                try:
                    parsed = LookupOptionPayload.model_validate(coerce_lookup_id(raw))
                except ValidationError:
                    logger.warning(
                        "Skipping malformed lookup option lookup=%s value=%r",
                        lookup_name,
                        raw,
                    )
                    continue
                options.append(LookupOption(id=parsed.id, name=parsed.name))
            lookups[lookup_name] = options
        return ReferenceData(lookups)

    def download_template(self) -> bytes:
        return self._request_bytes(
            method="GET",
            url=self._entity_url("template"),
            headers=self._auth_headers(),
        )

    def _parse_report(self, payload: Any) -> ValidationReportPayload:
        try:
            return ValidationReportPayload.model_validate(payload)
        except ValidationError as exc:
            logger.error("Backend report did not match contract source=%s error=%s", self.source, exc)
            raise ConnectorRequestError(
                f"{self.source}: response did not match the validation report contract."
            ) from exc

    def _entity_url(self, action: str) -> str:
        return f"{self._settings.base_url}/{self._settings.entity_endpoint}/{action}"

    def _absolute_url(self, path: str) -> str:
        return f"{self._settings.base_url}/{path.lstrip('/')}"

    def _auth_headers(self) -> dict[str, str]:
        if not self._settings.auth_token:
            return {}
        return {"Authorization": f"Bearer {self._settings.auth_token}"}


@lru_cache(maxsize=1)
def get_import_backend() -> ImportBackend:
    """
    Build and cache the HTTP backend with env-driven settings.
    """

    return BulkImportConnector(
        settings=get_import_backend_settings(),
        http_settings=get_external_http_settings(),
    )
