"""MySQL rate store."""

from __future__ import annotations

from fx_anchor.db.relational_backend import RelationalBackend


class MySQLBackend(RelationalBackend):
    """Concrete relational backend for MySQL engines."""

    def __init__(self, url: str, **kwargs: object) -> None:
        # MySQL drops idle connections after wait_timeout; the scheduler only writes once a day.
        kwargs.setdefault("pool_pre_ping", True)
        super().__init__(url, **kwargs)  # type: ignore[arg-type]


__all__ = ["MySQLBackend"]
