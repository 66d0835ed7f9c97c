"""
bulk_import/services/session_registry.py

In-memory registry of open import sessions for the API surface.

Sessions expire after ``ttl_seconds`` of inactivity; when the registry is
full the least recently used session is dropped.
"""

from __future__ import annotations

import logging
import threading
import time
from functools import lru_cache
from typing import Callable

from bulk_import.config import SessionStoreSettings, get_session_store_settings
from bulk_import.services.import_session_controller import (
    ImportSessionController,
    build_import_session_controller,
)

logger = logging.getLogger(__name__)

ControllerFactory = Callable[[], ImportSessionController]


class ImportSessionRegistry:
    """
    Thread-safe TTL store of ``ImportSessionController`` instances.
    """

    def __init__(
        self,
        *,
        factory: ControllerFactory,
        settings: SessionStoreSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._settings = settings or SessionStoreSettings()
        self._clock = clock
        self._lock = threading.Lock()
        self._store: dict[str, tuple[float, ImportSessionController]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def create(self) -> ImportSessionController:
        controller = self._factory()
        now = self._clock()
        with self._lock:
            self._prune(now)
            self._store[controller.session_id] = (now, controller)
            self._evict_overflow()
        logger.info("Import session opened session_id=%s", controller.session_id)
        return controller

    def get(self, session_id: str) -> ImportSessionController | None:
        key = str(session_id or "").strip()
        if not key:
            return None
        now = self._clock()
        with self._lock:
            self._prune(now)
            entry = self._store.get(key)
            if entry is None:
                return None
            _, controller = entry
            self._store[key] = (now, controller)
            return controller

    def discard(self, session_id: str) -> bool:
        key = str(session_id or "").strip()
        with self._lock:
            removed = self._store.pop(key, None) is not None
        if removed:
            logger.info("Import session closed session_id=%s", key)
        return removed

    def _prune(self, now: float) -> None:
        ttl = self._settings.ttl_seconds
        expired = [key for key, (touched, _) in self._store.items() if (now - touched) >= ttl]
        for key in expired:
            self._store.pop(key, None)
            logger.info("Import session expired session_id=%s", key)

    def _evict_overflow(self) -> None:
        while len(self._store) > self._settings.max_sessions:
            oldest = min(self._store, key=lambda key: self._store[key][0], default=None)
            if oldest is None:
                break
            self._store.pop(oldest, None)
            logger.warning("Import session evicted (registry full) session_id=%s", oldest)


@lru_cache(maxsize=1)
def get_import_session_registry() -> ImportSessionRegistry:
    """
    Return the process-wide registry wired to the env-configured backend.
    """

    return ImportSessionRegistry(
        factory=build_import_session_controller,
        settings=get_session_store_settings(),
    )
