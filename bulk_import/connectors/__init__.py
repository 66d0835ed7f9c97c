"""
bulk_import/connectors package marker.
"""

from bulk_import.connectors.base import BaseConnector, ConnectorRequestError
from bulk_import.connectors.import_backend import (
    BulkImportConnector,
    ImportBackend,
    RowCheckResult,
    get_import_backend,
)

__all__ = [
    "BaseConnector",
    "BulkImportConnector",
    "ConnectorRequestError",
    "ImportBackend",
    "RowCheckResult",
    "get_import_backend",
]
