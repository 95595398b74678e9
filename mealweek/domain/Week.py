"""WeekRecord domain entity: one operating week (status, timestamps, snapshot, operational lists)."""
from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Dict, List, Optional

from mealweek.domain.Snapshot import Snapshot
from mealweek.logic.weeks.week_identity import start_date_of, end_date_of, parse_week_id
from mealweek.utilities.constants import ISO_DATE_FORMAT, STATUS_DRAFT, STATUS_LOCKED


class WeekRecord:
    def __init__(self, week_id: str, status: str = STATUS_DRAFT, created_at: Optional[str] = None,
                 locked_at: Optional[str] = None, unlocked_at: Optional[str] = None,
                 snapshot: Optional[Snapshot] = None, last_snapshot: Optional[Snapshot] = None,
                 kds_status: Optional[Dict[str, Dict[str, Any]]] = None,
                 ready_for_delivery: Optional[List[dict]] = None,
                 delivery_log: Optional[List[dict]] = None,
                 grocery_bills: Optional[List[dict]] = None):
        parse_week_id(week_id)
        self._id = week_id
        self.status = status
        self.created_at = created_at
        self.locked_at = locked_at
        self.unlocked_at = unlocked_at
        self.snapshot = snapshot
        self.last_snapshot = last_snapshot
        self.kds_status = dict(kds_status) if kds_status else {}
        self.ready_for_delivery = list(ready_for_delivery) if ready_for_delivery else []
        self.delivery_log = list(delivery_log) if delivery_log else []
        self.grocery_bills = list(grocery_bills) if grocery_bills else []

    @property
    def id(self) -> str:
        return self._id

    @property
    def start_date(self):
        return start_date_of(self._id)

    @property
    def end_date(self):
        return end_date_of(self._id)

    @property
    def is_locked(self) -> bool:
        return self.status == STATUS_LOCKED

    def __repr__(self) -> str:
        return f"WeekRecord({self._id!r}, status={self.status!r})"

    @staticmethod
    def new(week_id: str, now: datetime) -> "WeekRecord":
        """Fresh draft record with empty snapshot and lists."""
        return WeekRecord(week_id, status=STATUS_DRAFT, created_at=now.isoformat())

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "WeekRecord":
        d = data if isinstance(data, dict) else {}
        week_id = d.get("id") or d.get("weekId")
        snapshot = d.get("snapshot")
        # Draft records from older data carry an empty placeholder snapshot
        if isinstance(snapshot, dict) and d.get("status") != STATUS_LOCKED and not any(snapshot.values()):
            snapshot = None
        return WeekRecord(
            week_id,
            status=d.get("status") or STATUS_DRAFT,
            created_at=d.get("createdAt"),
            locked_at=d.get("lockedAt"),
            unlocked_at=d.get("unlockedAt"),
            snapshot=Snapshot.from_dict(snapshot),
            last_snapshot=Snapshot.from_dict(d.get("lastSnapshot")),
            kds_status=copy.deepcopy(d.get("kdsStatus") or {}),
            ready_for_delivery=copy.deepcopy(d.get("readyForDelivery") or []),
            delivery_log=copy.deepcopy(d.get("deliveryLog") or []),
            grocery_bills=copy.deepcopy(d.get("groceryBills") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self._id,
            "startDate": self.start_date.strftime(ISO_DATE_FORMAT),
            "endDate": self.end_date.strftime(ISO_DATE_FORMAT),
            "status": self.status,
            "createdAt": self.created_at,
            "lockedAt": self.locked_at,
            "unlockedAt": self.unlocked_at,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "lastSnapshot": self.last_snapshot.to_dict() if self.last_snapshot else None,
            "kdsStatus": copy.deepcopy(self.kds_status),
            "readyForDelivery": copy.deepcopy(self.ready_for_delivery),
            "deliveryLog": copy.deepcopy(self.delivery_log),
            "groceryBills": copy.deepcopy(self.grocery_bills),
        }
