"""Database URL parsing for the rate store backends."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlparse, urlunparse

from fx_anchor.db import DEFAULT_SQLITE_DB_PATH

__all__ = ["DatabaseBackend", "DatabaseConnectionInfo"]


class DatabaseBackend(str, Enum):
    """Supported database engines for the rate table."""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    POSTGRES = "postgres"
    MONGODB = "mongodb"

    @classmethod
    def resolve_backend_and_scheme(cls, scheme: str) -> tuple["DatabaseBackend", str]:
        """Return backend enum + canonical scheme used in connection URLs."""

        if not scheme:
            raise ValueError("DB URL must include a scheme (e.g. mysql:// or postgres://)")
        scheme_lower = scheme.lower()
        base_scheme, _, driver = scheme_lower.partition("+")
        if base_scheme in {"postgresql", "postgres"}:
            # Preserve driver hints such as ``postgresql+psycopg``.
            canonical_scheme = f"postgresql+{driver}" if driver else "postgresql"
            return cls.POSTGRES, canonical_scheme
        if base_scheme == "sqlite":
            return cls.SQLITE, "sqlite"
        if base_scheme == "mysql":
            canonical_scheme = scheme_lower if driver else "mysql+pymysql"
            return cls.MYSQL, canonical_scheme
        if base_scheme == "mongodb":
            # Keep srv-style schemes intact so pymongo can route via DNS.
            canonical_scheme = scheme_lower if driver else "mongodb"
            return cls.MONGODB, canonical_scheme
        raise ValueError(
            "Unsupported database backend. Supported values are SQLite, MySQL, "
            "Postgres, and MongoDB."
        )

    @classmethod
    def from_scheme(cls, scheme: str) -> "DatabaseBackend":
        """Normalise URL schemes into a DatabaseBackend value."""

        backend, _ = cls.resolve_backend_and_scheme(scheme)
        return backend


@dataclass(slots=True)
class DatabaseConnectionInfo:
    """Represents how the engine should talk to the persistence layer."""

    backend: DatabaseBackend
    url: str
    name: str | None
    username: str | None
    password: str | None
    host: str | None
    port: int | None

    @classmethod
    def from_url(cls, url: str) -> "DatabaseConnectionInfo":
        """Create a connection object by parsing a database URL/DSN."""

        if re.match(r"(?i)sqlite(\+\w+)?:", url):
            return cls._from_sqlite_url(url)

        cleaned_url, query_db_name = cls._normalise_database_name_parameter(url)
        parsed = urlparse(cleaned_url)
        if not parsed.scheme:
            raise ValueError("DB URL must include a scheme (e.g. mysql:// or postgres://)")
        backend, canonical_scheme = DatabaseBackend.resolve_backend_and_scheme(parsed.scheme)
        if parsed.scheme != canonical_scheme:
            parsed = parsed._replace(scheme=canonical_scheme)
            cleaned_url = urlunparse(parsed)
        resolved_name = parsed.path[1:] if parsed.path and parsed.path != "/" else None
        if not resolved_name:
            resolved_name = query_db_name

        return cls(
            backend=backend,
            url=cleaned_url,
            name=resolved_name,
            username=parsed.username,
            password=parsed.password,
            host=parsed.hostname,
            port=parsed.port,
        )

    @classmethod
    def default_sqlite(
        cls, db_path: str | Path = DEFAULT_SQLITE_DB_PATH
    ) -> "DatabaseConnectionInfo":
        path = Path(db_path)
        return cls(
            backend=DatabaseBackend.SQLITE,
            url=f"sqlite:///{quote(path.as_posix(), safe='/:')}",
            name=str(path),
            username=None,
            password=None,
            host=None,
            port=None,
        )

    @classmethod
    def _from_sqlite_url(cls, url: str) -> "DatabaseConnectionInfo":
        """``sqlite:///relative.db`` and ``sqlite:////absolute.db`` map to file paths."""

        _, _, raw_path = url.partition(":///")
        raw_path = raw_path.split("?", 1)[0]
        if not raw_path:
            return cls.default_sqlite()
        return cls.default_sqlite(unquote(raw_path))

    @staticmethod
    def _normalise_database_name_parameter(url: str) -> tuple[str, str | None]:
        """Support a ``DATABASE_NAME`` query parameter in place of a URL path."""

        patched_url = re.sub(r"(?i)(?<![?&])DATABASE_NAME=", "&DATABASE_NAME=", url)
        parsed = urlparse(patched_url)
        query_pairs = parse_qsl(parsed.query, keep_blank_values=True)
        remaining_pairs: list[tuple[str, str]] = []
        database_name: str | None = None
        for key, value in query_pairs:
            if key.lower() == "database_name":
                if value:
                    database_name = value
                # Strip the custom parameter so PyMongo/SQLAlchemy don't error on it.
                continue
            remaining_pairs.append((key, value))

        new_path = parsed.path
        if (not new_path or new_path == "/") and database_name:
            new_path = f"/{database_name}"

        cleaned = parsed._replace(query=urlencode(remaining_pairs, doseq=True), path=new_path)
        return urlunparse(cleaned), database_name

    @property
    def is_sqlite(self) -> bool:
        return self.backend is DatabaseBackend.SQLITE

    @property
    def is_external(self) -> bool:
        """Return True for MySQL/Postgres/MongoDB backends."""

        return not self.is_sqlite
