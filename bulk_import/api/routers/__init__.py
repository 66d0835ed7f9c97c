"""
bulk_import/api/routers package marker.
"""

from bulk_import.api.routers.import_sessions import router as import_sessions_router

__all__ = [
    "import_sessions_router",
]
