"""
bulk_import/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

CSV_MIME_KINDS: frozenset[str] = frozenset(
    {
        "text/csv",
        "application/csv",
    }
)

SPREADSHEET_MIME_KINDS: frozenset[str] = frozenset(
    {
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    }
)


def load_env_files() -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading settings.
    """

    load_env_files()


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ImportIntakeSettings:
    """
    File acceptance rules applied before anything is sent to the backend.
    """

    max_file_size_mb: float = 10.0
    accepted_mime_kinds: frozenset[str] = CSV_MIME_KINDS | SPREADSHEET_MIME_KINDS
    accepted_extensions: frozenset[str] = frozenset({".csv", ".xls", ".xlsx"})

    @property
    def max_file_size_bytes(self) -> int:
        return int(self.max_file_size_mb * 1024 * 1024)


@dataclass(frozen=True)
class ResultBrowserSettings:
    """
    Pagination settings for the review table.
    """

    page_size: int = 10


@dataclass(frozen=True)
class ImportBackendSettings:
    """
    Location and contract details of the validation/commit backend.
    """

    base_url: str = "http://localhost:8000"
    auth_token: str | None = None
    entity_endpoint: str = "customers"
    entity_name: str = "Customer"
    reference_data_path: str = "/customers/reference-data"
    commit_rows_field: str = "validatedRows"


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for backend connectors.
    """

    timeout_seconds: float = 30.0
    max_retries: int = 2
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 0.0


@dataclass(frozen=True)
class SessionStoreSettings:
    """
    Lifetime limits for import sessions held by the API process.
    """

    ttl_seconds: float = 1800.0
    max_sessions: int = 64


@lru_cache(maxsize=1)
def get_import_intake_settings() -> ImportIntakeSettings:
    """
    Return cached intake settings from environment variables.
    """

    return ImportIntakeSettings(
        max_file_size_mb=max(0.1, _get_float_env("IMPORT_MAX_FILE_SIZE_MB", 10.0)),
    )


@lru_cache(maxsize=1)
def get_result_browser_settings() -> ResultBrowserSettings:
    """
    Return cached result browser settings from environment variables.
    """

    return ResultBrowserSettings(
        page_size=max(1, _get_int_env("IMPORT_PAGE_SIZE", 10)),
    )


@lru_cache(maxsize=1)
def get_import_backend_settings() -> ImportBackendSettings:
    """
    Return cached backend settings from environment variables.
    """

    return ImportBackendSettings(
        base_url=_get_str_env("IMPORT_BACKEND_URL", "http://localhost:8000").rstrip("/"),
        auth_token=_get_optional_str_env("IMPORT_BACKEND_TOKEN"),
        entity_endpoint=_get_str_env("IMPORT_ENTITY_ENDPOINT", "customers").strip("/"),
        entity_name=_get_str_env("IMPORT_ENTITY_NAME", "Customer"),
        reference_data_path=_get_str_env("IMPORT_REFERENCE_DATA_PATH", "/customers/reference-data"),
        commit_rows_field=_get_str_env("IMPORT_COMMIT_ROWS_FIELD", "validatedRows"),
    )


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared connector HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 30.0)),
        max_retries=max(0, _get_int_env("EXTERNAL_HTTP_MAX_RETRIES", 2)),
        backoff_initial_seconds=max(0.1, _get_float_env("EXTERNAL_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.0, _get_float_env("EXTERNAL_HTTP_RATE_LIMIT_PER_SECOND", 0.0)),
    )


@lru_cache(maxsize=1)
def get_session_store_settings() -> SessionStoreSettings:
    """
    Return cached session store settings from environment variables.
    """

    return SessionStoreSettings(
        ttl_seconds=max(60.0, _get_float_env("IMPORT_SESSION_TTL_SECONDS", 1800.0)),
        max_sessions=max(1, _get_int_env("IMPORT_SESSION_MAX_ITEMS", 64)),
    )
