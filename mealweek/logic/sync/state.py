"""Sync status and results. Not persisted; rebuilt by every load."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from mealweek.utilities.constants import DATA_MODE_LOCAL, SOURCE_LOADING


class SyncPhase(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"


@dataclass
class SyncState:
    is_online: bool = False
    is_syncing: bool = False
    last_synced_at: Optional[str] = None
    sync_error: Optional[str] = None
    data_source: str = SOURCE_LOADING
    is_read_only: bool = False
    phase: SyncPhase = SyncPhase.IDLE
    data_mode: str = DATA_MODE_LOCAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isOnline": self.is_online,
            "isSyncing": self.is_syncing,
            "lastSyncedAt": self.last_synced_at,
            "syncError": self.sync_error,
            "dataSource": self.data_source,
            "isReadOnly": self.is_read_only,
            "phase": self.phase.value,
            "dataMode": self.data_mode,
        }


@dataclass
class SyncResult:
    success: bool
    trigger: str
    synced_at: Optional[str] = None
    error: Optional[str] = None
    data_source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "trigger": self.trigger,
            "syncedAt": self.synced_at,
            "error": self.error,
            "dataSource": self.data_source,
        }
