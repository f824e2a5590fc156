"""Base class for JSON-backed stores with thread-safe read/write operations."""
from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


class BaseJSONStore:
    """Base class for JSON-backed stores with thread-safe operations.

    Provides:
    - Re-entrant locking so a store method can call another under the lock
    - Versioning and timestamp tracking
    - Atomic writes (temp file + replace)
    - Tolerance for missing or corrupt files

    Subclasses should:
    - Define VERSION as a class variable
    - Override _init_data() to provide initial data structure
    - Override _load_payload() to validate and merge loaded sections
    """

    VERSION = 1

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lock = threading.RLock()
        self._data: Dict[str, Any] = self._init_data()
        self._load()

    def _init_data(self) -> Dict[str, Any]:
        return {
            "version": self.VERSION,
            "updated_at": int(time.time()),
        }

    def _load(self) -> None:
        """Load data from JSON file if it exists.

        A corrupt file is logged and the default data is kept, so the next
        write replaces it.
        """
        if not self.path.exists():
            return
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable store %s: %s", self.path, exc)
            return
        if not isinstance(payload, dict):
            logger.warning("Ignoring store %s: top level is not an object", self.path)
            return

        version = payload.get("version")
        if isinstance(version, int) and version > 0:
            self._data["version"] = version

        updated = payload.get("updated_at")
        if isinstance(updated, (int, float)):
            self._data["updated_at"] = int(updated)

        self._load_payload(payload)

    def _load_payload(self, payload: Dict[str, Any]) -> None:
        """Merge validated sections of ``payload`` into ``self._data``."""

    def _touch_locked(self) -> None:
        """Update version and timestamp. Must be called with lock held."""
        self._data["version"] = self.VERSION
        self._data["updated_at"] = int(time.time())

    def _write_locked(self) -> None:
        """Write data to disk atomically. Must be called with lock held."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        temp_path.write_text(
            json.dumps(self._data, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        temp_path.replace(self.path)
