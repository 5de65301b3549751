"""Shared fixtures: an in-memory Store that behaves like the Postgres one."""

import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add parent directory to path to import taxokit
sys.path.insert(0, str(Path(__file__).parent.parent))

from taxokit.ingest.batcher import conflict_columns
from taxokit.ingest.store import Store


class StoreFailure(Exception):
    """Raised by FakeStore when a call is configured to fail."""


class FakeStore(Store):
    """
    In-memory Store.

    - upsert honours on_conflict (update in place, keep id) and rejects a
      call that touches the same key twice, like ON CONFLICT DO UPDATE
    - every call is recorded in self.calls as (operation, table, payload)
    - fail_upsert(table, rows) returning True makes that upsert raise
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.calls: List[tuple] = []
        self.fail_upsert: Optional[Callable[[str, List[Dict[str, Any]]], bool]] = None
        self.fail_delete: Optional[Callable[[str, List[Any]], bool]] = None
        self._next_id = 1000
        self._lock = threading.Lock()

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def select(self, table, key=None, values=None, columns=None):
        with self._lock:
            self.calls.append(("select", table, {"key": key, "values": values}))
            rows = self.tables.get(table, [])
            if key is not None and values is not None:
                wanted = set(values)
                rows = [r for r in rows if r.get(key) in wanted]
            if columns:
                return [{c: r.get(c) for c in columns} for r in rows]
            return [dict(r) for r in rows]

    def upsert(self, table, rows, on_conflict=None):
        with self._lock:
            self.calls.append(("upsert", table, [dict(r) for r in rows]))
            if self.fail_upsert is not None and self.fail_upsert(table, rows):
                raise StoreFailure(f"simulated failure writing {table}")

            keys = conflict_columns(on_conflict)
            seen = set()
            for row in rows:
                if keys:
                    key = tuple(row.get(k) for k in keys)
                    if key in seen:
                        raise StoreFailure("ON CONFLICT DO UPDATE command cannot affect row a second time")
                    seen.add(key)

            stored = self.tables.setdefault(table, [])
            returned = []
            for row in rows:
                existing = None
                if keys:
                    key = tuple(row.get(k) for k in keys)
                    existing = next(
                        (r for r in stored if tuple(r.get(k) for k in keys) == key), None
                    )
                if existing is not None:
                    existing.update({k: v for k, v in row.items() if k != "id" or v is not None})
                    returned.append(dict(existing))
                else:
                    new_row = dict(row)
                    if new_row.get("id") is None:
                        new_row["id"] = self._new_id()
                    stored.append(new_row)
                    returned.append(dict(new_row))
            return returned

    def delete(self, table, ids):
        with self._lock:
            self.calls.append(("delete", table, list(ids)))
            if self.fail_delete is not None and self.fail_delete(table, ids):
                raise StoreFailure(f"simulated failure deleting from {table}")
            doomed = set(ids)
            self.tables[table] = [r for r in self.tables.get(table, []) if r.get("id") not in doomed]

    # Helpers for assertions

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.tables.get(table, [])]

    def by(self, table: str, key: str) -> Dict[Any, Dict[str, Any]]:
        return {r[key]: dict(r) for r in self.tables.get(table, [])}

    def upsert_calls(self, table: Optional[str] = None) -> List[List[Dict[str, Any]]]:
        return [
            payload for op, t, payload in self.calls
            if op == "upsert" and (table is None or t == table)
        ]


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def make_store():
    return FakeStore
