"""Date helpers and the clock abstraction used by the engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of "now" for every component that needs the current date."""

    def now(self) -> datetime:
        ...  # pragma: no cover - protocol definition

    def today(self) -> date:
        ...  # pragma: no cover - protocol definition


class SystemClock:
    """Clock backed by the system time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


@dataclass
class FixedClock:
    """Clock frozen at ``moment``; handy for deterministic runs."""

    moment: datetime

    def now(self) -> datetime:
        return self.moment

    def today(self) -> date:
        return self.moment.date()

    def advance(self, delta: timedelta) -> None:
        self.moment = self.moment + delta


def parse_date(value: str | date) -> date:
    """Parse a date string in ISO format to :class:`date`."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value, "%Y-%m-%d").date()


def parse_time_of_day(value: str | time) -> time:
    """Parse ``HH:MM`` (24h) into a :class:`time`."""

    if isinstance(value, time):
        return value
    try:
        parsed = datetime.strptime(value.strip(), "%H:%M")
    except ValueError as exc:
        raise ValueError(f"Invalid time of day {value!r}; expected HH:MM") from exc
    return parsed.time()


def next_run_after(moment: datetime, at: time) -> datetime:
    """Return the first UTC datetime strictly after ``moment`` at ``at``."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    candidate = datetime.combine(moment.date(), at, tzinfo=timezone.utc)
    if candidate <= moment:
        candidate += timedelta(days=1)
    return candidate


def normalise_rate_date(value: object) -> date:
    """Coerce driver values (date, datetime, ISO string) into a :class:`date`."""

    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(str(value))


__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "next_run_after",
    "normalise_rate_date",
    "parse_date",
    "parse_time_of_day",
]
