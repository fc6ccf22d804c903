"""MongoDB rate store."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Sequence

from fx_anchor.db.base_backend import RateStore, dedupe_batch
from fx_anchor.errors import PersistenceError
from fx_anchor.models import ExchangeRateRecord, PersistenceResult
from fx_anchor.utils.dates import Clock, SystemClock
from fx_anchor.utils.logger import get_logger

try:  # pragma: no cover - optional dependency
    from pymongo import MongoClient, UpdateOne
    from pymongo.collection import Collection
    from pymongo.errors import BulkWriteError, PyMongoError
except ModuleNotFoundError:  # pragma: no cover - handled dynamically
    MongoClient = None  # type: ignore[assignment,misc]
    UpdateOne = None  # type: ignore[assignment,misc]
    Collection = None  # type: ignore[assignment,misc]
    BulkWriteError = Exception  # type: ignore[assignment,misc]
    PyMongoError = Exception  # type: ignore[assignment,misc]

LOGGER = get_logger(__name__)

COLLECTION_NAME = "exchange_rates"


class MongoBackend(RateStore):
    """Rate store that keeps one document per ``(base, target, date)``."""

    def __init__(
        self,
        url: str,
        *,
        database: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        if MongoClient is None:  # pragma: no cover - defensive
            raise ModuleNotFoundError("pymongo is required for MongoDB backends")
        self.url = url
        self.clock: Clock = clock or SystemClock()
        self._client = MongoClient(url, serverSelectionTimeoutMS=5000)
        db = self._client.get_default_database() if database is None else self._client[database]
        if db is None:
            raise ValueError("MongoDB connection URI must include a database name")
        self._collection: Collection = db[COLLECTION_NAME]

    def ensure_schema(self) -> None:
        try:
            LOGGER.info("Ensuring MongoDB exchange_rates collection exists")
            self._client.admin.command("ping")
            self._collection.create_index(
                [("base_currency", 1), ("target_currency", 1), ("rate_date", 1)], unique=True
            )
        except PyMongoError as exc:  # pragma: no cover - error path
            raise PersistenceError(f"Failed to ensure MongoDB schema: {exc}") from exc

    def get_rate(self, base: str, target: str, rate_date: date) -> float | None:
        doc = self._find_one(
            {"base_currency": base, "target_currency": target, "rate_date": rate_date.isoformat()}
        )
        return float(doc["rate"]) if doc else None

    def get_recent_rate(self, base: str, target: str, within_days: int) -> float | None:
        threshold = self.clock.today() - timedelta(days=within_days)
        doc = self._find_one(
            {
                "base_currency": base,
                "target_currency": target,
                "rate_date": {"$gte": threshold.isoformat()},
            },
            sort=[("rate_date", -1)],
        )
        return float(doc["rate"]) if doc else None

    def upsert_many(self, records: Sequence[ExchangeRateRecord]) -> PersistenceResult:
        batch = dedupe_batch(records)
        if not batch:
            return PersistenceResult()
        try:
            try:
                result = self._write_batch(batch)
            except BulkWriteError:
                LOGGER.info("Concurrent insert detected; retrying batch of %s rows", len(batch))
                result = self._write_batch(batch)
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to upsert MongoDB rates: {exc}") from exc
        LOGGER.info(
            "Inserted %s rows, updated %s rows, unchanged %s rows",
            result.inserted,
            result.updated,
            result.unchanged,
        )
        return result

    def _write_batch(self, batch: Sequence[ExchangeRateRecord]) -> PersistenceResult:
        result = PersistenceResult()
        dates = sorted({record.rate_date.isoformat() for record in batch})
        existing: dict[tuple[str, str, str], tuple[float, str]] = {
            (doc["base_currency"], doc["target_currency"], doc["rate_date"]): (
                float(doc["rate"]),
                doc["source"],
            )
            for doc in self._collection.find({"rate_date": {"$in": dates}})
        }
        now = self.clock.now().replace(tzinfo=None)
        operations: list[UpdateOne] = []
        for record in batch:
            key = (record.base_currency, record.target_currency, record.rate_date.isoformat())
            current = existing.get(key)
            if current == (record.rate, record.source):
                result.unchanged += 1
                continue
            if current is None:
                result.inserted += 1
            else:
                result.updated += 1
            operations.append(
                UpdateOne(
                    {
                        "base_currency": key[0],
                        "target_currency": key[1],
                        "rate_date": key[2],
                    },
                    {
                        "$set": {"rate": record.rate, "source": record.source, "updated_at": now},
                        "$setOnInsert": {"created_at": record.created_at or now},
                    },
                    upsert=True,
                )
            )
        if operations:
            self._collection.bulk_write(operations, ordered=False)
        return result

    def count_for_date(self, rate_date: date) -> int:
        try:
            return int(self._collection.count_documents({"rate_date": rate_date.isoformat()}))
        except PyMongoError as exc:
            raise PersistenceError(f"MongoDB count failed: {exc}") from exc

    def count_all(self) -> int:
        try:
            return int(self._collection.count_documents({}))
        except PyMongoError as exc:
            raise PersistenceError(f"MongoDB count failed: {exc}") from exc

    def latest_date(self) -> date | None:
        doc = self._find_one({}, sort=[("rate_date", -1)])
        return date.fromisoformat(doc["rate_date"]) if doc else None

    def currencies_for_date(self, rate_date: date, target: str) -> set[str]:
        try:
            codes = self._collection.distinct(
                "base_currency",
                {"rate_date": rate_date.isoformat(), "target_currency": target},
            )
        except PyMongoError as exc:
            raise PersistenceError(f"MongoDB query failed: {exc}") from exc
        return {str(code) for code in codes}

    def latest_rates(self, base: str) -> list[ExchangeRateRecord]:
        latest: dict[str, ExchangeRateRecord] = {}
        try:
            docs = self._collection.find({"base_currency": base}).sort("rate_date", -1)
            for doc in docs:
                if doc["target_currency"] in latest:
                    continue
                latest[doc["target_currency"]] = _to_record(doc)
        except PyMongoError as exc:
            raise PersistenceError(f"MongoDB query failed: {exc}") from exc
        return [latest[code] for code in sorted(latest)]

    def _find_one(
        self, query: dict[str, Any], *, sort: list[tuple[str, int]] | None = None
    ) -> dict[str, Any] | None:
        try:
            return self._collection.find_one(query, sort=sort)
        except PyMongoError as exc:
            raise PersistenceError(f"MongoDB query failed: {exc}") from exc

    def close(self) -> None:  # pragma: no cover - trivial cleanup
        self._client.close()


def _to_record(doc: dict[str, Any]) -> ExchangeRateRecord:
    created = doc.get("created_at")
    updated = doc.get("updated_at")
    return ExchangeRateRecord(
        base_currency=doc["base_currency"],
        target_currency=doc["target_currency"],
        rate=float(doc["rate"]),
        rate_date=date.fromisoformat(doc["rate_date"]),
        source=doc.get("source", "unknown"),
        created_at=created if isinstance(created, datetime) else None,
        updated_at=updated if isinstance(updated, datetime) else None,
    )


__all__ = ["MongoBackend"]
