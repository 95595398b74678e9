import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

from mealweek.utilities.constants import DATA_MODE_KEY, DATA_MODE_LOCAL, DATA_MODE_REMOTE, STORAGE_KEY, SYNC_STATUS_KEY

logger = logging.getLogger(__name__)


class LocalStore:
    """Key -> JSON blob map persisted in a single file.

    The full application payload lives under ``chefData``; the data mode and the
    last sync status sit beside it. Writes go through a temp file and a move so a
    crash never leaves a half-written store.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = Lock()

    def _safe_load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Local store {self.path} unreadable, treating as empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _atomic_write(self, data: Dict[str, Any]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".store_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(data, tmp, indent=2, ensure_ascii=False)
            shutil.move(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._safe_load().get(key, default)

    def set(self, key: str, value: Any):
        with self._lock:
            data = self._safe_load()
            data[key] = value
            self._atomic_write(data)

    def remove(self, key: str):
        with self._lock:
            data = self._safe_load()
            if key in data:
                del data[key]
                self._atomic_write(data)

    def exists(self) -> bool:
        return self.path.exists()

    # --- payload helpers ---
    def load_payload(self) -> Optional[Dict[str, Any]]:
        payload = self.get(STORAGE_KEY)
        return payload if isinstance(payload, dict) else None

    def save_payload(self, payload: Dict[str, Any]):
        self.set(STORAGE_KEY, payload)

    def has_payload(self) -> bool:
        return self.load_payload() is not None

    def get_data_mode(self) -> str:
        mode = self.get(DATA_MODE_KEY)
        return mode if mode in (DATA_MODE_LOCAL, DATA_MODE_REMOTE) else DATA_MODE_LOCAL

    def set_data_mode(self, mode: str):
        if mode not in (DATA_MODE_LOCAL, DATA_MODE_REMOTE):
            raise ValueError(f"Unknown data mode: {mode!r}")
        self.set(DATA_MODE_KEY, mode)

    def save_sync_status(self, status: Dict[str, Any]):
        self.set(SYNC_STATUS_KEY, status)

    def load_sync_status(self) -> Dict[str, Any]:
        return self.get(SYNC_STATUS_KEY) or {}

    def holds_unmigrated_data(self) -> bool:
        """True when the stored payload was written locally and has never been migrated to the remote store."""
        if not self.has_payload():
            return False
        status = self.load_sync_status()
        return not status.get("migrationComplete") and not status.get("cachedFromRemote")


__all__ = ['LocalStore']
