from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from bulk_import.logging_utils import configure_logging


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - IMPORT_BACKEND_URL must be an absolute http(s) URL.
    - Numeric limits must parse and be positive when set.
    """

    from bulk_import.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Backend URL ----------------------------------------------------
    backend_url = os.getenv("IMPORT_BACKEND_URL", "").strip()
    if not backend_url:
        errors.append("IMPORT_BACKEND_URL is not set. It must point at the import backend.")
    elif not backend_url.startswith(("http://", "https://")):
        errors.append(
            f"IMPORT_BACKEND_URL='{backend_url}' is not valid. It must start with http:// or https://."
        )

    # --- Numeric limits -------------------------------------------------
    for name in ("IMPORT_MAX_FILE_SIZE_MB", "IMPORT_PAGE_SIZE"):
        raw_value = os.getenv(name, "").strip()
        if not raw_value:
            continue
        try:
            parsed = float(raw_value)
        except ValueError:
            errors.append(f"{name}='{raw_value}' is not a number.")
            continue
        if parsed <= 0:
            errors.append(f"{name}='{raw_value}' must be greater than zero.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    configure_logging(os.getenv("LOG_LEVEL", "INFO"))


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Log the backend target on boot and drop open sessions on exit."""
    from bulk_import.config import get_import_backend_settings
    from bulk_import.services.session_registry import get_import_session_registry

    settings = get_import_backend_settings()
    logging.getLogger(__name__).info(
        "Import API ready backend=%s entity=%s",
        settings.base_url,
        settings.entity_endpoint,
    )
    try:
        yield
    finally:
        open_sessions = len(get_import_session_registry())
        get_import_session_registry.cache_clear()
        logging.getLogger(__name__).info("Import API shut down open_sessions=%d", open_sessions)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Bulk Import API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from bulk_import.api.routers import import_sessions_router

    application.include_router(import_sessions_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
