"""
Shared fixtures: an in-memory Store double that interprets the handful of
aggregation stages the tests use.
"""

import copy
import itertools
import threading
from collections.abc import Sequence
from typing import Any

import pytest

from manifold.connections.base import Store


class StoreFailure(RuntimeError):
    """Injected store-level failure."""


def _get(doc: dict[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
    for key, expected in query.items():
        actual = _get(doc, key)
        if isinstance(expected, dict) and expected and all(k.startswith("$") for k in expected):
            for op, operand in expected.items():
                if op == "$eq" and actual != operand:
                    return False
                if op == "$ne" and actual == operand:
                    return False
                if op == "$gt" and not (actual is not None and actual > operand):
                    return False
                if op == "$gte" and not (actual is not None and actual >= operand):
                    return False
                if op == "$lt" and not (actual is not None and actual < operand):
                    return False
                if op == "$in" and actual not in operand:
                    return False
        elif actual != expected:
            return False
    return True


def _evaluate(doc: dict[str, Any], expr: Any) -> Any:
    if isinstance(expr, str) and expr.startswith("$"):
        return _get(doc, expr[1:])
    return copy.deepcopy(expr)


class MemoryStore(Store):
    """
    Dict-backed Store for tests.

    Supports ``$match``, ``$set``/``$addFields``, ``$unset``, ``$unionWith``,
    ``$out`` and ``$merge``, plus views and time-series provisioning. Any
    other stage raises, as a malformed pipeline would against a real server.
    """

    def __init__(self, default_database: str = "testdb"):
        self.default_database = default_database
        self.collections: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.views: dict[tuple[str, str], tuple[str, list[dict[str, Any]]]] = {}
        self.timeseries: dict[tuple[str, str], Any] = {}
        self.aggregations: list[tuple[str, str, list[dict[str, Any]]]] = []
        self.calls: list[tuple[str, str, str]] = []
        self.failures: dict[str, Exception] = {}
        self.closed = False
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    # -- test helpers ---------------------------------------------------------

    def _key(self, database: str | None, name: str) -> tuple[str, str]:
        return (database or self.default_database, name)

    def seed(self, collection: str, docs: Sequence[dict[str, Any]], database: str | None = None) -> None:
        self.collections[self._key(database, collection)] = copy.deepcopy(list(docs))

    def docs(self, collection: str, database: str | None = None) -> list[dict[str, Any]]:
        """Contents of a collection, or a view evaluated over its source."""
        with self._lock:
            return self._read(database or self.default_database, collection)

    def fail_on(self, name: str, error: Exception | None = None) -> None:
        """Fail any aggregation reading from or writing to ``name``."""
        self.failures[name] = error or StoreFailure(f"injected failure for '{name}'")

    # -- Store ----------------------------------------------------------------

    def aggregate(self, database: str | None, collection: str, stages: Sequence[dict[str, Any]]) -> None:
        db = database or self.default_database
        stages = copy.deepcopy(list(stages))
        with self._lock:
            self.calls.append(("aggregate", db, collection))
            self.aggregations.append((db, collection, stages))
            for name in [collection, *self._output_names(stages)]:
                if name in self.failures:
                    raise self.failures[name]
            self._run(db, self._read(db, collection), stages)

    def drop_view(self, database: str | None, name: str) -> None:
        with self._lock:
            self.calls.append(("drop_view", database or self.default_database, name))
            self.views.pop(self._key(database, name), None)

    def create_view(self, database: str | None, name: str, view_on: str, stages: Sequence[dict[str, Any]]) -> None:
        with self._lock:
            key = self._key(database, name)
            self.calls.append(("create_view", key[0], name))
            if name in self.failures:
                raise self.failures[name]
            if key in self.views or key in self.collections:
                raise StoreFailure(f"namespace {key[0]}.{name} already exists")
            self.views[key] = (view_on, copy.deepcopy(list(stages)))

    def collection_exists(self, database: str | None, name: str) -> bool:
        key = self._key(database, name)
        return key in self.collections or key in self.views

    def create_timeseries_collection(self, database: str | None, name: str, options: Any) -> None:
        with self._lock:
            key = self._key(database, name)
            self.calls.append(("create_timeseries", key[0], name))
            self.timeseries[key] = options
            self.collections.setdefault(key, [])

    def close(self) -> None:
        self.closed = True

    # -- evaluation -----------------------------------------------------------

    @staticmethod
    def _output_names(stages: list[dict[str, Any]]) -> list[str]:
        names = []
        for stage in stages:
            target = stage.get("$out") or (stage.get("$merge") or {}).get("into")
            if isinstance(target, dict):
                target = target.get("coll")
            if target:
                names.append(target)
        return names

    def _read(self, db: str, name: str) -> list[dict[str, Any]]:
        if (db, name) in self.views:
            view_on, view_stages = self.views[(db, name)]
            return self._run(db, self._read(db, view_on), view_stages)
        return copy.deepcopy(self.collections.get((db, name), []))

    def _run(self, db: str, docs: list[dict[str, Any]], stages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for stage in stages:
            ((op, arg),) = stage.items()
            if op == "$match":
                docs = [d for d in docs if _matches(d, arg)]
            elif op in ("$set", "$addFields"):
                docs = [{**d, **{k: _evaluate(d, v) for k, v in arg.items()}} for d in docs]
            elif op == "$unset":
                fields = [arg] if isinstance(arg, str) else arg
                docs = [{k: v for k, v in d.items() if k not in fields} for d in docs]
            elif op == "$unionWith":
                union = {"coll": arg} if isinstance(arg, str) else arg
                docs = docs + self._run(db, self._read(db, union["coll"]), union.get("pipeline", []))
            elif op == "$out":
                target_db, target = self._destination(db, arg)
                self.collections[(target_db, target)] = copy.deepcopy(docs)
                docs = []
            elif op == "$merge":
                self._merge(db, arg, docs)
                docs = []
            else:
                raise StoreFailure(f"Unrecognized pipeline stage name: '{op}'")
        return docs

    @staticmethod
    def _destination(db: str, target: Any) -> tuple[str, str]:
        if isinstance(target, dict):
            return target.get("db", db), target["coll"]
        return db, target

    def _merge(self, db: str, options: dict[str, Any], docs: list[dict[str, Any]]) -> None:
        target_key = self._destination(db, options["into"])
        on = options.get("on", "_id")
        keys = [on] if isinstance(on, str) else list(on)
        when_matched = options.get("whenMatched", "merge")
        when_not_matched = options.get("whenNotMatched", "insert")

        existing = self.collections.setdefault(target_key, [])
        for doc in docs:
            identity = [_get(doc, k) for k in keys]
            index = next(
                (i for i, current in enumerate(existing) if [_get(current, k) for k in keys] == identity),
                None,
            )
            if index is None:
                if when_not_matched == "insert":
                    inserted = copy.deepcopy(doc)
                    inserted.setdefault("_id", f"generated-{next(self._ids)}")
                    existing.append(inserted)
                elif when_not_matched == "fail":
                    raise StoreFailure(f"$merge found no match for {identity}")
            elif when_matched == "replace":
                existing[index] = copy.deepcopy(doc)
            elif when_matched == "merge":
                existing[index] = {**existing[index], **copy.deepcopy(doc)}
            elif when_matched == "fail":
                raise StoreFailure(f"E11000 duplicate key error on {keys}: {identity}")


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
