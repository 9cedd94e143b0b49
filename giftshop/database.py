# giftshop/database.py
"""Persistence for profiles, categories, products and featured items.

The catalog owns no authoritative data: rows live in a hosted Postgres behind a
REST gateway (``RestDatabase``). ``MemoryDatabase`` keeps the same contract in
process for local runs and tests.
"""
import asyncio
import copy
import json
import logging
import uuid
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

import httpx

from .core import utcnow_iso
from .errors import DuplicateValueError, RemoteServiceError

logger = logging.getLogger(__name__)

TABLES = ("profiles", "categories", "products", "featured_items")
# tables carrying an updated_at column
_TOUCHED = {"profiles", "products"}

Row = Dict[str, Any]


class Filter(NamedTuple):
    column: str
    op: str  # "eq" | "contains" | "in"
    value: Any


class Order(NamedTuple):
    column: str
    descending: bool = False


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def contains(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "contains", list(values))


def is_in(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "in", list(values))


class Database:
    """Collection-style access to the four catalog tables."""

    async def select(self, table: str, filters: Sequence[Filter] = (), order: Sequence[Order] = (),
                     limit: Optional[int] = None, columns: str = "*") -> List[Row]:
        raise NotImplementedError

    async def insert(self, table: str, row: Row) -> Row:
        raise NotImplementedError

    async def update(self, table: str, row_id: str, changes: Row) -> Optional[Row]:
        raise NotImplementedError

    async def update_where(self, table: str, filters: Sequence[Filter], changes: Row) -> int:
        raise NotImplementedError

    async def upsert(self, table: str, row: Row, ignore_duplicates: bool = False) -> Optional[Row]:
        raise NotImplementedError

    async def delete(self, table: str, row_id: str) -> bool:
        raise NotImplementedError

    async def get(self, table: str, row_id: str) -> Optional[Row]:
        rows = await self.select(table, [eq("id", row_id)], limit=1)
        return rows[0] if rows else None

    def for_session(self, access_token: Optional[str]) -> "Database":
        """A view of this database that acts as the signed-in caller."""
        return self

    async def aclose(self):
        pass


# ---------------------------
# In-memory backend
# ---------------------------
def _matches(row: Row, f: Filter) -> bool:
    value = row.get(f.column)
    if f.op == "eq":
        return value == f.value
    if f.op == "contains":
        return isinstance(value, list) and all(v in value for v in f.value)
    if f.op == "in":
        return value in f.value
    raise ValueError(f"unsupported filter op: {f.op}")


def _sort_rows(rows: List[Row], order: Sequence[Order]) -> List[Row]:
    # stable sorts applied from the last key to the first
    for o in reversed(order):
        rows.sort(key=lambda r: (r.get(o.column) is None, r.get(o.column)), reverse=o.descending)
    return rows


class MemoryDatabase(Database):
    def __init__(self, unique: Optional[Dict[str, Sequence[str]]] = None):
        self.tables: Dict[str, Dict[str, Row]] = {name: {} for name in TABLES}
        self.unique = unique if unique is not None else {"categories": ("slug",)}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _table(self, table: str) -> Dict[str, Row]:
        if table not in self.tables:
            raise RemoteServiceError(f"access {table}", KeyError(table))
        return self.tables[table]

    def _check_unique(self, table: str, row: Row):
        for column in self.unique.get(table, ()):
            for other in self.tables[table].values():
                if other["id"] != row["id"] and other.get(column) == row.get(column):
                    raise DuplicateValueError(f"write {table}", column)

    async def select(self, table, filters=(), order=(), limit=None, columns="*"):
        # newest insertion first, so equal sort keys still come out most recent first
        rows = [r for r in reversed(list(self._table(table).values()))
                if all(_matches(r, f) for f in filters)]
        rows = _sort_rows(rows, order)
        if limit is not None:
            rows = rows[:limit]
        if columns != "*":
            wanted = [c.strip() for c in columns.split(",")]
            rows = [{c: r.get(c) for c in wanted} for r in rows]
        return copy.deepcopy(rows)

    def _insert_row(self, table: str, row: Row) -> Row:
        rows = self._table(table)
        new = dict(row)
        new.setdefault("id", uuid.uuid4().hex)
        if new["id"] in rows:
            raise DuplicateValueError(f"insert {table}", "id")
        now = utcnow_iso()
        new.setdefault("created_at", now)
        if table in _TOUCHED:
            new.setdefault("updated_at", now)
        self._check_unique(table, new)
        rows[new["id"]] = new
        return copy.deepcopy(new)

    def _update_row(self, table: str, row_id: str, changes: Row) -> Optional[Row]:
        rows = self._table(table)
        if row_id not in rows:
            return None
        updated = {**rows[row_id], **changes, "id": row_id}
        if table in _TOUCHED:
            updated["updated_at"] = utcnow_iso()
        self._check_unique(table, updated)
        rows[row_id] = updated
        return copy.deepcopy(updated)

    async def insert(self, table, row):
        async with self._get_lock(f"table:{table}"):
            return self._insert_row(table, row)

    async def update(self, table, row_id, changes):
        async with self._get_lock(f"table:{table}"):
            return self._update_row(table, row_id, changes)

    async def update_where(self, table, filters, changes):
        matched = [r["id"] for r in await self.select(table, filters, columns="id")]
        for row_id in matched:
            await self.update(table, row_id, changes)
        return len(matched)

    async def upsert(self, table, row, ignore_duplicates=False):
        # check and write under one lock so concurrent first writers cannot both insert
        async with self._get_lock(f"table:{table}"):
            if row.get("id") not in self._table(table):
                return self._insert_row(table, row)
            if ignore_duplicates:
                return None
            return self._update_row(table, row["id"], row)

    async def delete(self, table, row_id):
        async with self._get_lock(f"table:{table}"):
            return self._table(table).pop(row_id, None) is not None


# ---------------------------
# REST backend (PostgREST dialect)
# ---------------------------
def _quote(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return json.dumps(value) if isinstance(value, str) and any(ch in value for ch in ',(){}"') else str(value)


def filter_params(filters: Sequence[Filter]) -> List[tuple]:
    params = []
    for f in filters:
        if f.op == "eq":
            params.append((f.column, f"eq.{_quote(f.value)}"))
        elif f.op == "contains":
            params.append((f.column, "cs.{" + ",".join(json.dumps(v) for v in f.value) + "}"))
        elif f.op == "in":
            params.append((f.column, "in.(" + ",".join(_quote(v) for v in f.value) + ")"))
        else:
            raise ValueError(f"unsupported filter op: {f.op}")
    return params


def order_param(order: Sequence[Order]) -> str:
    return ",".join(f"{o.column}.{'desc' if o.descending else 'asc'}" for o in order)


class RestDatabase(Database):
    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 10.0,
                 client: Optional[httpx.AsyncClient] = None, access_token: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.client = client or httpx.AsyncClient(base_url=f"{self.base_url}/rest/v1", timeout=timeout)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["apikey"] = self.api_key
        token = self.access_token or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _send(self, operation: str, method: str, table: str, params=None, json_body=None,
                    prefer: Optional[str] = None) -> Any:
        try:
            r = await self.client.request(method, f"/{table}", params=params, json=json_body,
                                          headers=self._headers(prefer))
            r.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("%s on %s failed: %s", operation, table, e)
            if isinstance(e, httpx.HTTPStatusError) and e.response.status_code == 409:
                # unique_violation
                raise DuplicateValueError(f"{operation} {table}", cause=e) from e
            raise RemoteServiceError(f"{operation} {table}", e) from e
        if not r.content:
            return []
        return r.json()

    def for_session(self, access_token):
        if not access_token:
            return self
        return RestDatabase(self.base_url, self.api_key, client=self.client, access_token=access_token)

    async def select(self, table, filters=(), order=(), limit=None, columns="*"):
        params = [("select", columns)] + filter_params(filters)
        if order:
            params.append(("order", order_param(order)))
        if limit is not None:
            params.append(("limit", str(limit)))
        return await self._send("select", "GET", table, params=params)

    async def insert(self, table, row):
        rows = await self._send("insert", "POST", table, json_body=row, prefer="return=representation")
        return rows[0]

    async def update(self, table, row_id, changes):
        rows = await self._send("update", "PATCH", table, params=filter_params([eq("id", row_id)]),
                                json_body=changes, prefer="return=representation")
        return rows[0] if rows else None

    async def update_where(self, table, filters, changes):
        rows = await self._send("update", "PATCH", table, params=filter_params(filters),
                                json_body=changes, prefer="return=representation")
        return len(rows)

    async def upsert(self, table, row, ignore_duplicates=False):
        resolution = "ignore-duplicates" if ignore_duplicates else "merge-duplicates"
        rows = await self._send("upsert", "POST", table, params=[("on_conflict", "id")], json_body=row,
                                prefer=f"resolution={resolution},return=representation")
        return rows[0] if rows else None

    async def delete(self, table, row_id):
        rows = await self._send("delete", "DELETE", table, params=filter_params([eq("id", row_id)]),
                                prefer="return=representation")
        return bool(rows)

    async def aclose(self):
        await self.client.aclose()
