"""Remote store clients.

Both clients expose the same async surface:

    get(table, filters=None, order=None)      -> list of rows
    upsert_by_key(table, record, unique_key)  -> stored row
    insert(table, records)                    -> inserted rows
    delete(table, filters)                    -> None
    count(table)                              -> int
    probe_connectivity()                      -> bool
    is_configured                             (property)

Filters are plain ``{column: value}`` equality maps. ``unique_key`` is a comma
separated column list (``"name,category"``), the same form PostgREST takes in
``on_conflict``. Upserts are true insert-or-update; callers never check for
existence first.
"""
from __future__ import annotations

import copy
import logging
import uuid
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from mealweek.utilities.errors import RemoteStoreError, RemoteUnreachableError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Filters = Optional[Dict[str, Any]]


def _key_columns(unique_key: str) -> List[str]:
    return [c.strip() for c in unique_key.split(",") if c.strip()]


def _filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class HttpRemoteStore:
    """PostgREST-style REST client (the API a Supabase project exposes)."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key or ""
        self.timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(self, method: str, table: str, params=None, json=None, prefer=None) -> httpx.Response:
        if not self.is_configured:
            raise RemoteUnreachableError("Remote store not configured", table=table)
        try:
            async with httpx.AsyncClient(base_url=f"{self.base_url}/rest/v1", timeout=self.timeout,
                                         transport=self._transport) as client:
                response = await client.request(method, f"/{table}", params=params, json=json,
                                                headers=self._headers(prefer))
        except httpx.HTTPError as e:
            raise RemoteUnreachableError(f"{table}: {e}", table=table) from e
        if response.status_code >= 400:
            try:
                message = response.json().get("message") or response.text
            except ValueError:
                message = response.text
            raise RemoteStoreError(message, status_code=response.status_code, table=table)
        return response

    @staticmethod
    def _eq(filters: Filters) -> Dict[str, str]:
        return {col: f"eq.{_filter_value(val)}" for col, val in (filters or {}).items()}

    async def get(self, table: str, filters: Filters = None, order: Optional[str] = None) -> List[Row]:
        params = {"select": "*", **self._eq(filters)}
        if order:
            params["order"] = order
        response = await self._request("GET", table, params=params)
        return response.json()

    async def upsert_by_key(self, table: str, record: Row, unique_key: str) -> Row:
        response = await self._request(
            "POST", table,
            params={"on_conflict": unique_key},
            json=record,
            prefer="resolution=merge-duplicates,return=representation",
        )
        rows = response.json()
        return rows[0] if isinstance(rows, list) and rows else record

    async def insert(self, table: str, records: Union[Row, List[Row]]) -> List[Row]:
        response = await self._request("POST", table, json=records, prefer="return=representation")
        return response.json()

    async def delete(self, table: str, filters: Filters) -> None:
        if not filters:
            raise ValueError(f"Refusing to delete every row of {table}")
        await self._request("DELETE", table, params=self._eq(filters))

    async def count(self, table: str) -> int:
        response = await self._request("HEAD", table, params={"select": "*"}, prefer="count=exact")
        content_range = response.headers.get("content-range", "")
        total = content_range.rsplit("/", 1)[-1]
        return int(total) if total.isdigit() else 0

    async def probe_connectivity(self) -> bool:
        """Cheap read against app_settings; a missing table still proves the server answers."""
        if not self.is_configured:
            return False
        try:
            await self._request("GET", "app_settings", params={"select": "key", "limit": "1"})
            return True
        except RemoteUnreachableError as e:
            logger.warning(f"Remote store unreachable: {e}")
            return False
        except RemoteStoreError as e:
            if "does not exist" in str(e):
                return True
            logger.error(f"Remote store connection error: {e}")
            return False


class MemoryRemoteStore:
    """In-process remote store with real unique-key upsert semantics.

    Used for development (``MEALWEEK_REMOTE_BACKEND=memory``) and tests. It can
    be switched offline and told to reject specific records.
    """

    def __init__(self, configured: bool = True, online: bool = True):
        self._tables: Dict[str, List[Row]] = {}
        self._lock = Lock()
        self._configured = configured
        self.online = online
        self.probe_count = 0
        self.calls: List[tuple] = []
        self._failures: List[tuple] = []

    @property
    def is_configured(self) -> bool:
        return self._configured

    def set_online(self, online: bool):
        self.online = online

    def fail_when(self, table: str, predicate: Callable[[Row], bool], message: str = "rejected by remote"):
        """Make upserts/inserts into ``table`` fail for records matching ``predicate``."""
        self._failures.append((table, predicate, message))

    def rows(self, table: str) -> List[Row]:
        with self._lock:
            return copy.deepcopy(self._tables.get(table, []))

    def _check(self, table: str, op: str):
        self.calls.append((op, table))
        if not self._configured:
            raise RemoteUnreachableError("Remote store not configured", table=table)
        if not self.online:
            raise RemoteUnreachableError(f"{table}: connection refused", table=table)

    def _check_record(self, table: str, record: Row):
        for fail_table, predicate, message in self._failures:
            if fail_table == table and predicate(record):
                raise RemoteStoreError(message, status_code=400, table=table)

    @staticmethod
    def _matches(row: Row, filters: Filters) -> bool:
        return all(row.get(col) == val for col, val in (filters or {}).items())

    async def get(self, table: str, filters: Filters = None, order: Optional[str] = None) -> List[Row]:
        self._check(table, "get")
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._tables.get(table, []) if self._matches(r, filters)]
        if order:
            column, _, direction = order.partition(".")
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=direction == "desc")
        return rows

    async def upsert_by_key(self, table: str, record: Row, unique_key: str) -> Row:
        self._check(table, "upsert")
        self._check_record(table, record)
        columns = _key_columns(unique_key)
        missing = [c for c in columns if record.get(c) in (None, "")]
        if missing:
            raise RemoteStoreError(f"null value in column \"{missing[0]}\" violates not-null constraint",
                                   status_code=400, table=table)
        key = {c: record[c] for c in columns}
        with self._lock:
            rows = self._tables.setdefault(table, [])
            for row in rows:
                if self._matches(row, key):
                    row.update(copy.deepcopy(record))
                    return copy.deepcopy(row)
            row = {"id": str(uuid.uuid4()), **copy.deepcopy(record)}
            rows.append(row)
            return copy.deepcopy(row)

    async def insert(self, table: str, records: Union[Row, List[Row]]) -> List[Row]:
        self._check(table, "insert")
        batch = records if isinstance(records, list) else [records]
        for record in batch:
            self._check_record(table, record)
        inserted = []
        with self._lock:
            rows = self._tables.setdefault(table, [])
            for record in batch:
                row = {"id": str(uuid.uuid4()), **copy.deepcopy(record)}
                rows.append(row)
                inserted.append(copy.deepcopy(row))
        return inserted

    async def delete(self, table: str, filters: Filters) -> None:
        if not filters:
            raise ValueError(f"Refusing to delete every row of {table}")
        self._check(table, "delete")
        with self._lock:
            self._tables[table] = [r for r in self._tables.get(table, []) if not self._matches(r, filters)]

    async def count(self, table: str) -> int:
        self._check(table, "count")
        with self._lock:
            return len(self._tables.get(table, []))

    async def probe_connectivity(self) -> bool:
        self.probe_count += 1
        return self._configured and self.online


def build_remote_store(backend: str, url: str, key: str, timeout: float):
    if backend == "memory":
        logger.info("Using in-memory remote store")
        return MemoryRemoteStore()
    if not (url and key):
        logger.warning("Remote store credentials not configured. Set MEALWEEK_REMOTE_URL and MEALWEEK_REMOTE_KEY.")
    return HttpRemoteStore(url, key, timeout=timeout)


__all__ = ['HttpRemoteStore', 'MemoryRemoteStore', 'build_remote_store']
