from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

import httpx
import pytest

from cache import RideCache
from clock import FixedClock
from exceptions import NetworkError
from network import Request, Response
from storage import MemoryStore

NOW = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# In-memory stand-in for the supabase client
# ---------------------------------------------------------------------------


class FakeQuery:
    """Records a postgrest-style call chain and applies it to in-memory rows.

    Column projections and embedded joins are ignored; rows are returned as
    they were seeded.
    """

    def __init__(self, backend, table):
        self.backend = backend
        self.table = table
        self.filters = []
        self.operation = "select"
        self.payload = None
        self.order_by = None
        self.row_limit = None
        self.on_conflict = None

    def select(self, columns="*"):
        self.columns = columns
        return self

    def insert(self, payload):
        self.operation, self.payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict=None):
        self.operation, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, payload):
        self.operation, self.payload = "update", payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: str(row.get(column) or "") >= value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda row: str(row.get(column) or "") <= value)
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.row_limit = n
        return self

    def _matching(self):
        return [row for row in self.backend.tables[self.table] if all(f(row) for f in self.filters)]

    def execute(self):
        self.backend.calls.append((self.table, self.operation))
        if self.backend.error is not None:
            raise self.backend.error
        rows = self.backend.tables.setdefault(self.table, [])
        if self.operation == "insert":
            row = dict(self.payload)
            row.setdefault("id", len(rows) + 1)
            rows.append(row)
            return SimpleNamespace(data=[row])
        if self.operation == "upsert":
            key = self.on_conflict or "id"
            for row in rows:
                if row.get(key) == self.payload.get(key):
                    row.update(self.payload)
                    return SimpleNamespace(data=[row])
            rows.append(dict(self.payload))
            return SimpleNamespace(data=[rows[-1]])
        matched = self._matching()
        if self.operation == "update":
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=matched)
        if self.operation == "delete":
            self.backend.tables[self.table] = [row for row in rows if row not in matched]
            return SimpleNamespace(data=matched)
        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda row: str(row.get(column) or ""), reverse=desc)
        if self.row_limit is not None:
            matched = matched[: self.row_limit]
        return SimpleNamespace(data=[dict(row) for row in matched])


class FakeBucket:
    def __init__(self, backend, name):
        self.backend = backend
        self.name = name

    def upload(self, path, data, options=None):
        self.backend.uploads[f"{self.name}/{path}"] = (data, options)
        return SimpleNamespace(path=path)

    def get_public_url(self, path):
        return f"https://example.supabase.co/storage/v1/object/public/{self.name}/{path}"


class FakeSupabase:
    def __init__(self, tables: Optional[Dict[str, List[dict]]] = None):
        self.tables = {"profiles": [], "rides": [], "audit_logs": []}
        self.tables.update(tables or {})
        self.calls = []
        self.uploads = {}
        self.error = None
        self.storage = SimpleNamespace(from_=lambda name: FakeBucket(self, name))

    def table(self, name):
        self.tables.setdefault(name, [])
        return FakeQuery(self, name)

    def go_offline(self):
        self.error = httpx.ConnectError("connection refused")

    def go_online(self):
        self.error = None


# ---------------------------------------------------------------------------
# Scripted network
# ---------------------------------------------------------------------------


class FakeNetwork:
    """Serves canned responses by URL; ``offline`` makes every fetch fail."""

    def __init__(self, routes: Optional[Dict[str, bytes]] = None):
        self.routes = dict(routes or {})
        self.statuses: Dict[str, int] = {}
        self.offline = False
        self.requests: List[Request] = []

    def fetch(self, request: Request) -> Response:
        self.requests.append(request)
        if self.offline:
            raise NetworkError(f"offline: {request.url}")
        if request.url not in self.routes:
            return Response(request.url, 404, b"not found")
        return Response(request.url, self.statuses.get(request.url, 200), self.routes[request.url])


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def ride_cache(store, clock):
    return RideCache(store, clock)


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def network():
    return FakeNetwork()


def make_ride(from_="Campus", to="Kuril", at=NOW, **extra):
    ride = {"from": from_, "to": to, "time": at.isoformat() if isinstance(at, datetime) else at}
    ride.update(extra)
    return ride
