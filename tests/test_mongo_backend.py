"""Mongo backend tests that monkeypatch pymongo primitives."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List

import pytest

from fx_anchor.db import mongo_backend as mongo_module
from fx_anchor.errors import PersistenceError

TODAY = date(2025, 8, 15)


def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for field, condition in query.items():
        value = doc.get(field)
        if isinstance(condition, dict):
            if "$gte" in condition and not value >= condition["$gte"]:
                return False
            if "$in" in condition and value not in condition["$in"]:
                return False
        elif value != condition:
            return False
    return True


class _DummyCursor:
    def __init__(self, docs: List[Dict[str, Any]]) -> None:
        self._docs = docs

    def __iter__(self):
        return iter(self._docs)

    def sort(self, field: str, direction: int) -> List[Dict[str, Any]]:
        return sorted(self._docs, key=lambda doc: doc[field], reverse=direction == -1)


class _DummyCollection:
    def __init__(self) -> None:
        self.docs: Dict[tuple[str, str, str], Dict[str, Any]] = {}
        self.indexes: list[tuple[tuple[tuple[str, int], ...], bool]] = []
        self.fail_with: Exception | None = None

    def __bool__(self) -> bool:  # pragma: no cover - behavioural parity with pymongo
        raise NotImplementedError("Collection truthiness is undefined")

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def create_index(self, fields: list[tuple[str, int]], unique: bool) -> None:
        self.indexes.append((tuple(fields), unique))

    def bulk_write(self, operations: list["_DummyUpdateOne"], ordered: bool) -> None:
        assert ordered is False
        self._check()
        for op in operations:
            key = (op.filter["base_currency"], op.filter["target_currency"], op.filter["rate_date"])
            doc = self.docs.get(key)
            if doc is None:
                doc = dict(op.filter)
                doc.update(op.update.get("$setOnInsert", {}))
                self.docs[key] = doc
            doc.update(op.update["$set"])

    def find(self, query: Dict[str, Any]) -> _DummyCursor:
        self._check()
        return _DummyCursor([dict(doc) for doc in self.docs.values() if _matches(doc, query)])

    def find_one(self, query: Dict[str, Any], sort: list[tuple[str, int]] | None = None):
        self._check()
        docs = [doc for doc in self.docs.values() if _matches(doc, query)]
        for field, direction in reversed(sort or []):
            docs.sort(key=lambda doc: doc[field], reverse=direction == -1)
        return dict(docs[0]) if docs else None

    def count_documents(self, query: Dict[str, Any]) -> int:
        self._check()
        return sum(1 for doc in self.docs.values() if _matches(doc, query))

    def distinct(self, field: str, query: Dict[str, Any]) -> list[Any]:
        self._check()
        return sorted({doc[field] for doc in self.docs.values() if _matches(doc, query)})


class _DummyUpdateOne:
    def __init__(
        self, filter: Dict[str, str], update: Dict[str, Dict[str, Any]], *, upsert: bool
    ) -> None:
        assert upsert is True
        self.filter = filter
        self.update = update
        self.upsert = upsert


class _DummyDatabase(dict):
    def __getitem__(self, name: str) -> _DummyCollection:  # type: ignore[override]
        if name not in self:
            self[name] = _DummyCollection()
        return dict.__getitem__(self, name)


class _DummyClient:
    def __init__(self, url: str, **options: Any) -> None:
        self.url = url
        self.options = options
        self.admin = self
        self.closed = False
        self.databases: Dict[str, _DummyDatabase] = {}

    def __getitem__(self, name: str) -> _DummyDatabase:
        return self.databases.setdefault(name, _DummyDatabase())

    def get_default_database(self) -> _DummyDatabase:
        return self.__getitem__("default")

    def command(self, name: str) -> None:
        assert name == "ping"

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def patch_mongo_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(mongo_module, "MongoClient", _DummyClient)
    monkeypatch.setattr(mongo_module, "PyMongoError", RuntimeError)
    monkeypatch.setattr(mongo_module, "BulkWriteError", KeyError)
    monkeypatch.setattr(mongo_module, "UpdateOne", _DummyUpdateOne)


@pytest.fixture
def backend(clock) -> mongo_module.MongoBackend:
    backend = mongo_module.MongoBackend("mongodb://example.com/", database="fx", clock=clock)
    backend.ensure_schema()
    return backend


def test_mongo_backend_creates_unique_index(backend) -> None:
    collection = backend._collection

    assert collection.indexes == [
        ((("base_currency", 1), ("target_currency", 1), ("rate_date", 1)), True)
    ]
    assert backend._client.options["serverSelectionTimeoutMS"] == 5000


def test_mongo_backend_roundtrip(backend, record) -> None:
    result = backend.upsert_many([record("INR", "USD", 0.012), record("USD", "INR", 83.2)])

    assert result.inserted == 2
    assert backend.get_rate("INR", "USD", TODAY) == pytest.approx(0.012)
    assert backend.get_rate("INR", "USD", TODAY - timedelta(days=1)) is None
    assert backend.count_for_date(TODAY) == 2
    assert backend.count_all() == 2
    assert backend.latest_date() == TODAY
    assert backend.currencies_for_date(TODAY, "INR") == {"USD"}


def test_mongo_upsert_counts_and_preserves_created_at(backend, record, clock) -> None:
    backend.upsert_many([record("USD", "INR", 83.0)])
    unchanged = backend.upsert_many([record("USD", "INR", 83.0)])
    assert (unchanged.inserted, unchanged.updated, unchanged.unchanged) == (0, 0, 1)

    created = clock.now().replace(tzinfo=None)
    clock.advance(timedelta(hours=1))
    updated = backend.upsert_many([record("USD", "INR", 83.4, source="stub:forced")])

    assert updated.updated == 1
    (doc,) = backend._collection.docs.values()
    assert doc["rate"] == 83.4
    assert doc["source"] == "stub:forced"
    assert doc["created_at"] == created
    assert doc["updated_at"] == created + timedelta(hours=1)


def test_mongo_recent_rate_and_latest_rates(backend, record) -> None:
    backend.upsert_many(
        [
            record("INR", "USD", 0.0119, TODAY - timedelta(days=9)),
            record("INR", "USD", 0.0121, TODAY - timedelta(days=4)),
            record("INR", "EUR", 0.0099, TODAY - timedelta(days=2)),
        ]
    )

    assert backend.get_recent_rate("INR", "USD", 7) == pytest.approx(0.0121)
    assert backend.get_recent_rate("INR", "USD", 3) is None
    latest = backend.latest_rates("INR")
    assert [(row.target_currency, row.rate) for row in latest] == [
        ("EUR", 0.0099),
        ("USD", 0.0121),
    ]


def test_mongo_errors_become_persistence_errors(backend, record) -> None:
    backend._collection.fail_with = RuntimeError("connection refused")

    with pytest.raises(PersistenceError):
        backend.get_rate("INR", "USD", TODAY)
    with pytest.raises(PersistenceError):
        backend.count_for_date(TODAY)
    with pytest.raises(PersistenceError):
        backend.upsert_many([record("INR", "USD", 0.012)])


def test_mongo_backend_uses_default_database(clock) -> None:
    backend = mongo_module.MongoBackend("mongodb://example.com/fx", clock=clock)

    assert "default" in backend._client.databases
    backend.close()
    assert backend._client.closed is True
