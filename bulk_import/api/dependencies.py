"""
bulk_import/api/dependencies.py

Shared FastAPI dependencies for the import session endpoints.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Path, status

from bulk_import.services.import_session_controller import ImportSessionController
from bulk_import.services.session_registry import ImportSessionRegistry, get_import_session_registry


def get_import_session(
    session_id: str = Path(..., min_length=1),
    registry: ImportSessionRegistry = Depends(get_import_session_registry),
) -> ImportSessionController:
    """
    Resolve the controller of an open import session or answer 404.
    """

    controller = registry.get(session_id)
    if controller is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Import session '{session_id}' not found or expired.",
        )
    return controller
