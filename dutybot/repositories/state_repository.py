# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: console key/value store.
Values are JSON-serialized strings keyed by a versioned name; the whole map
is written to one JSON file. No path means memory only.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

from dutybot.core.logging import get_logger

logger = get_logger(__name__)

STAFF_LIST_KEY = "roster_staff_list"
CALIBRATION_OFFSET_KEY = "roster_calibration_offset"
GROUPS_KEY = "line_groups_v1"
SCHEDULE_CONFIG_KEY = "schedule_config_v1"
REMOTE_URL_KEY = "remote_api_url"
CONNECTION_MODE_KEY = "connection_mode"
TASKS_KEY = "scheduled_tasks_v1"


class StateRepository:
    """Key/value store with JSON-serialized values."""

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = Path(path) if path else None
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Failed to load console state from %s: %s", self._path, exc)
            return
        if isinstance(raw, dict):
            self._data = {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _commit(self, candidate: dict[str, str]) -> None:
        """Write ``candidate`` to disk, then make it the live map. Call with the lock held."""
        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self._path.parent,
                prefix=self._path.name + ".", suffix=".tmp", delete=False,
            ) as tmp:
                json.dump(candidate, tmp, ensure_ascii=False, indent=2)
            try:
                os.replace(tmp.name, self._path)
            except OSError:
                os.unlink(tmp.name)
                raise
        self._data = candidate

    def get(self, key: str, default: Any = None) -> Any:
        """Decode the value for ``key``; unreadable values fall back to ``default``."""
        raw = self._data.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable value for key=%s", key)
            return default

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, ensure_ascii=False)
        with self._lock:
            self._commit({**self._data, key: encoded})

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._data:
                return False
            candidate = dict(self._data)
            del candidate[key]
            self._commit(candidate)
        return True

    def exists(self, key: str) -> bool:
        return key in self._data

    def clear(self) -> None:
        with self._lock:
            self._commit({})

    def count(self) -> int:
        return len(self._data)
