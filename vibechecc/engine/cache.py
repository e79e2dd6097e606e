"""
vibechecc.engine.cache — In-Memory Settings Cache
==================================================

Economy tuning values live in the ``settings`` table.  Reading them on
every vote would add a query per transition, so they are cached in memory
and re-read by calling :meth:`ConfigCache.load_all` again after an
operator edit.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from vibechecc.database.models import Setting

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class ConfigCache:
    """Thread-safe in-memory cache of the ``settings`` table.

    Usage:
        cache = ConfigCache(engine)
        cache.load_all()

        quota = cache.get_int("limits.max_dampen_per_day", default=10)
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        # key → parsed JSON value
        self._settings: dict[str, Any] = {}

    # -------------------------------------------------------------------
    # Cache loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load every setting from the DB. Call on startup and after an edit."""
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json

        with self._lock:
            self._settings = parsed
        logger.info("ConfigCache loaded: %d settings", len(parsed))

    # -------------------------------------------------------------------
    # Typed setting accessors (thread-safe)
    # -------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return float(val)
        except (TypeError, ValueError):
            return default
