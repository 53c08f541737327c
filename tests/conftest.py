"""
Shared fixtures: an in-memory stand-in for the Supabase client and a ready
SyncEngine bound to it.

FakeSupabase implements the slice of the client the sync layer uses: the
table query builder, storage buckets and realtime channels. Any
(table, operation) pair can be made to fail with fail_on().
"""

import copy
import os
import sys
from collections import defaultdict

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from agencyhub.background import BackgroundQueue
from agencyhub.notify import Notifier
from agencyhub.sync import SyncEngine

TENANT = "11111111-2222-3333-4444-555555555555"
OTHER_TENANT = "99999999-8888-7777-6666-555555555555"


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, db, table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.order_by = None
        self.descending = False
        self.row_limit = None
        self.on_conflict = ""

    def select(self, *_columns):
        self.op = "select"
        return self

    def insert(self, rows):
        self.op = "insert"
        self.payload = rows
        return self

    def update(self, values):
        self.op = "update"
        self.payload = values
        return self

    def delete(self):
        self.op = "delete"
        return self

    def upsert(self, row, on_conflict: str = ""):
        self.op = "upsert"
        self.payload = row
        self.on_conflict = on_conflict
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc: bool = False):
        self.order_by = column
        self.descending = desc
        return self

    def limit(self, count: int):
        self.row_limit = count
        return self

    def matches(self, row: dict) -> bool:
        return all(row.get(col) == val for col, val in self.filters)

    def execute(self):
        return FakeResponse(self.db.execute(self))


class FakeBucket:
    def __init__(self, storage, name: str):
        self.storage = storage
        self.name = name

    def upload(self, path, data, file_options=None):
        self.storage.check(self.name, "upload")
        self.storage.objects[self.name][path] = data
        return {"Key": f"{self.name}/{path}"}

    def list(self, prefix=""):
        self.storage.check(self.name, "list")
        return [{"name": key} for key in sorted(self.storage.objects[self.name])
                if key.startswith(prefix)]

    def create_signed_url(self, path, expires_in):
        self.storage.check(self.name, "sign")
        return {self.storage.url_key: f"https://fake.storage/{self.name}/{path}?expires={expires_in}"}

    def remove(self, paths):
        self.storage.check(self.name, "remove")
        for path in paths:
            self.storage.objects[self.name].pop(path, None)
        return [{"name": p} for p in paths]


class FakeStorage:
    def __init__(self):
        self.objects = defaultdict(dict)
        self.failures = set()
        self.url_key = "signedURL"

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)

    def check(self, bucket: str, op: str):
        if (bucket, op) in self.failures:
            raise RuntimeError(f"injected {op} failure on bucket {bucket}")


class FakeChannel:
    def __init__(self, name: str):
        self.name = name
        self.bindings = []
        self.subscribed = False

    def on_postgres_changes(self, event, schema=None, table=None, filter=None, callback=None):
        self.bindings.append({"event": event, "schema": schema, "table": table,
                              "filter": filter, "callback": callback})
        return self

    def subscribe(self, callback=None):
        self.subscribed = True
        return self

    def emit(self, payload: dict):
        for binding in self.bindings:
            binding["callback"](payload)


class FakeSupabase:
    def __init__(self):
        self.tables = defaultdict(list)
        self.calls = []
        self.failures = {}
        self.storage = FakeStorage()
        self.channels = []
        self.removed_channels = []

    # -- failure injection --------------------------------------------------
    def fail_on(self, table: str, op: str, times: int = None):
        """Make (table, op) raise. times=None fails forever."""
        self.failures[(table, op)] = times

    def _maybe_fail(self, table: str, op: str):
        key = (table, op)
        if key not in self.failures:
            return
        remaining = self.failures[key]
        if remaining is not None:
            if remaining <= 1:
                del self.failures[key]
            else:
                self.failures[key] = remaining - 1
        raise RuntimeError(f"injected {op} failure on {table}")

    # -- client API ---------------------------------------------------------
    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def channel(self, name: str) -> FakeChannel:
        ch = FakeChannel(name)
        self.channels.append(ch)
        return ch

    def remove_channel(self, channel):
        self.removed_channels.append(channel)

    def execute(self, q: FakeQuery) -> list:
        self.calls.append((q.op, q.table))
        self._maybe_fail(q.table, q.op)
        rows = self.tables[q.table]

        if q.op == "select":
            found = [copy.deepcopy(r) for r in rows if q.matches(r)]
            if q.order_by:
                found.sort(key=lambda r: r.get(q.order_by) or "", reverse=q.descending)
            if q.row_limit:
                found = found[:q.row_limit]
            return found

        if q.op == "insert":
            new_rows = q.payload if isinstance(q.payload, list) else [q.payload]
            new_rows = [copy.deepcopy(r) for r in new_rows]
            rows.extend(new_rows)
            return copy.deepcopy(new_rows)

        if q.op == "update":
            changed = []
            for r in rows:
                if q.matches(r):
                    r.update(copy.deepcopy(q.payload))
                    changed.append(copy.deepcopy(r))
            return changed

        if q.op == "delete":
            removed = [r for r in rows if q.matches(r)]
            self.tables[q.table] = [r for r in rows if not q.matches(r)]
            return copy.deepcopy(removed)

        if q.op == "upsert":
            row = copy.deepcopy(q.payload)
            key = q.on_conflict
            for existing in rows:
                if key and existing.get(key) == row.get(key):
                    existing.update(row)
                    return [copy.deepcopy(existing)]
            rows.append(row)
            return [copy.deepcopy(row)]

        raise AssertionError(f"unexpected op {q.op}")


class FakeFunctions:
    """Stand-in for EdgeFunctions that records its calls."""

    def __init__(self, summary: str = "סיכום שיחה"):
        self.summary = summary
        self.calls = []

    def generate_summary(self, summary_type, transcript="", **kwargs):
        self.calls.append((summary_type, transcript))
        return self.summary


@pytest.fixture
def fake():
    return FakeSupabase()


@pytest.fixture
def make_engine(fake):
    """Factory for engines bound to the shared fake client."""
    engines = []

    def build(tenant_id=TENANT, load=True, **kwargs):
        kwargs.setdefault("background", BackgroundQueue(inline=True, backoff=0))
        kwargs.setdefault("notifier", Notifier())
        kwargs.setdefault("user_id", "user-1")
        kwargs.setdefault("user_name", "דנה")
        kwargs.setdefault("realtime_client", fake)
        engine = SyncEngine(fake, tenant_id=tenant_id, **kwargs)
        if load:
            engine.load_all()
        engines.append(engine)
        return engine

    yield build
    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine):
    return make_engine()


def toast_messages(engine) -> list:
    return [m["message"] for m in engine.notifier.history]
