"""SQLite rate store implementation."""

from __future__ import annotations

from pathlib import Path

from fx_anchor.db import DEFAULT_SQLITE_DB_PATH
from fx_anchor.db.relational_backend import RelationalBackend
from fx_anchor.errors import PersistenceError
from fx_anchor.utils.dates import Clock
from fx_anchor.utils.logger import get_logger

LOGGER = get_logger(__name__)


class SQLiteBackend(RelationalBackend):
    """Rate store kept in a local SQLite file.

    The schema is created on construction unless ``create_schema`` is false, in
    which case the caller runs :meth:`ensure_schema` itself.
    """

    def __init__(
        self,
        db_path: str | Path = DEFAULT_SQLITE_DB_PATH,
        *,
        clock: Clock | None = None,
        create_schema: bool = True,
    ) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        super().__init__(
            f"sqlite:///{self.db_path}",
            clock=clock,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        LOGGER.debug("Using SQLite rate store at %s", self.db_path)
        if create_schema:
            self.ensure_schema()

    def ensure_schema(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(
                f"Cannot create directory for SQLite file {self.db_path}: {exc}"
            ) from exc
        super().ensure_schema()

    def __enter__(self) -> "SQLiteBackend":  # pragma: no cover - trivial
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - trivial
        self.close()


__all__ = ["SQLiteBackend"]
