"""SQLAlchemy powered rate store shared by SQLite, Postgres and MySQL."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Sequence, cast

from sqlalchemy import Column, Date, DateTime, Double, String, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from fx_anchor.db.base_backend import RateStore, dedupe_batch
from fx_anchor.errors import PersistenceError
from fx_anchor.models import ExchangeRateRecord, PersistenceResult
from fx_anchor.utils.dates import Clock, SystemClock, normalise_rate_date
from fx_anchor.utils.logger import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    pass


class _ExchangeRate(Base):
    __tablename__ = "exchange_rates"

    base_currency = Column(String(3), primary_key=True)
    target_currency = Column(String(3), primary_key=True)
    rate_date = Column(Date, primary_key=True)
    rate = Column(Double, nullable=False)
    source = Column(String(64), nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class RelationalBackend(RateStore):
    """Rate store backed by any SQLAlchemy engine URL."""

    def __init__(self, url: str, *, clock: Clock | None = None, **engine_options: object) -> None:
        self.url = url
        self.clock: Clock = clock or SystemClock()
        self._engine_options = engine_options
        self._engine_instance: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    def _get_engine(self) -> Engine:
        if self._engine_instance is None:
            try:
                self._engine_instance = create_engine(self.url, future=True, **self._engine_options)
            except ModuleNotFoundError as exc:
                raise PersistenceError(
                    f"Missing database driver '{exc.name}' for {self.url.split(':', 1)[0]}"
                ) from exc
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Unable to create engine: {exc}") from exc
        return self._engine_instance

    def _get_session_factory(self) -> sessionmaker[Session]:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self._get_engine(), expire_on_commit=False, future=True
            )
        return self._session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        factory = self._get_session_factory()
        try:
            with factory() as session:
                yield session
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Rate store query failed: {exc}") from exc

    def _timestamp(self) -> datetime:
        # Stored naive, in UTC.
        return self.clock.now().replace(tzinfo=None)

    def ensure_schema(self) -> None:
        engine = self._get_engine()
        try:
            LOGGER.info("Ensuring exchange_rates schema exists")
            Base.metadata.create_all(engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to ensure exchange_rates schema: {exc}") from exc

    def get_rate(self, base: str, target: str, rate_date: date) -> float | None:
        with self._session() as session:
            row = session.get(
                _ExchangeRate,
                {"base_currency": base, "target_currency": target, "rate_date": rate_date},
            )
            return float(cast(float, row.rate)) if row is not None else None

    def get_recent_rate(self, base: str, target: str, within_days: int) -> float | None:
        threshold = self.clock.today() - timedelta(days=within_days)
        stmt = (
            select(_ExchangeRate.rate)
            .where(_ExchangeRate.base_currency == base)
            .where(_ExchangeRate.target_currency == target)
            .where(_ExchangeRate.rate_date >= threshold)
            .order_by(_ExchangeRate.rate_date.desc())
            .limit(1)
        )
        with self._session() as session:
            value = session.execute(stmt).scalar_one_or_none()
            return float(value) if value is not None else None

    def upsert_many(self, records: Sequence[ExchangeRateRecord]) -> PersistenceResult:
        batch = dedupe_batch(records)
        if not batch:
            return PersistenceResult()
        try:
            try:
                result = self._write_batch(batch)
            except IntegrityError:
                # A racing writer inserted one of our keys first; the second pass
                # sees those rows and overwrites them instead.
                LOGGER.info("Concurrent insert detected; retrying batch of %s rows", len(batch))
                result = self._write_batch(batch)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to upsert exchange rates: {exc}") from exc
        LOGGER.info(
            "Inserted %s rows, updated %s rows, unchanged %s rows",
            result.inserted,
            result.updated,
            result.unchanged,
        )
        return result

    def _write_batch(self, batch: Sequence[ExchangeRateRecord]) -> PersistenceResult:
        result = PersistenceResult()
        now = self._timestamp()
        with self._get_session_factory()() as session:
            for record in batch:
                pk = {
                    "base_currency": record.base_currency,
                    "target_currency": record.target_currency,
                    "rate_date": record.rate_date,
                }
                existing = session.get(_ExchangeRate, pk)
                if existing is None:
                    session.add(
                        _ExchangeRate(
                            **pk,
                            rate=record.rate,
                            source=record.source,
                            created_at=record.created_at or now,
                            updated_at=now,
                        )
                    )
                    result.inserted += 1
                elif existing.rate == record.rate and existing.source == record.source:
                    result.unchanged += 1
                else:
                    setattr(existing, "rate", record.rate)
                    setattr(existing, "source", record.source)
                    setattr(existing, "updated_at", now)
                    result.updated += 1
            session.commit()
        return result

    def count_for_date(self, rate_date: date) -> int:
        stmt = select(func.count()).select_from(_ExchangeRate).where(
            _ExchangeRate.rate_date == rate_date
        )
        with self._session() as session:
            return int(session.execute(stmt).scalar_one())

    def count_all(self) -> int:
        with self._session() as session:
            stmt = select(func.count()).select_from(_ExchangeRate)
            return int(session.execute(stmt).scalar_one())

    def latest_date(self) -> date | None:
        with self._session() as session:
            value = session.execute(select(func.max(_ExchangeRate.rate_date))).scalar_one_or_none()
            return normalise_rate_date(value) if value is not None else None

    def currencies_for_date(self, rate_date: date, target: str) -> set[str]:
        stmt = (
            select(_ExchangeRate.base_currency)
            .where(_ExchangeRate.rate_date == rate_date)
            .where(_ExchangeRate.target_currency == target)
        )
        with self._session() as session:
            return {str(code) for code in session.execute(stmt).scalars()}

    def latest_rates(self, base: str) -> list[ExchangeRateRecord]:
        stmt = (
            select(_ExchangeRate)
            .where(_ExchangeRate.base_currency == base)
            .order_by(_ExchangeRate.rate_date.desc())
        )
        latest: dict[str, ExchangeRateRecord] = {}
        with self._session() as session:
            for model in session.execute(stmt).scalars():
                target = cast(str, model.target_currency)
                if target in latest:
                    continue
                latest[target] = _to_record(model)
        return [latest[code] for code in sorted(latest)]

    def close(self) -> None:  # pragma: no cover - trivial resource cleanup
        if self._engine_instance is not None:
            self._engine_instance.dispose()


def _to_record(model: _ExchangeRate) -> ExchangeRateRecord:
    return ExchangeRateRecord(
        base_currency=cast(str, model.base_currency),
        target_currency=cast(str, model.target_currency),
        rate=float(cast(float, model.rate)),
        rate_date=normalise_rate_date(model.rate_date),
        source=cast(str, model.source),
        created_at=cast(datetime, model.created_at),
        updated_at=cast(datetime, model.updated_at),
    )


__all__ = ["Base", "RelationalBackend"]
