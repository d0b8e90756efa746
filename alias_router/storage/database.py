"""Database session handling and the generic keyed datastore."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from sqlalchemy import create_engine, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from alias_router.core.exceptions import StorageError


class Base(DeclarativeBase):
    pass


def _engine_options(url: str) -> dict[str, Any]:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False, "timeout": 30}}
    if url in {"sqlite://", "sqlite:///:memory:"}:
        options["poolclass"] = StaticPool
    return options


class Datastore:
    """CRUD access to the service tables by table name and equality filters."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.engine = create_engine(url, future=True, **_engine_options(url))
        self._sessions = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )

    def init_db(self) -> None:
        """Create tables if they do not already exist."""
        from . import models  # noqa: F401  registers tables on Base.metadata

        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to initialise database: {exc}") from exc

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Storage operation failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _model(self, table: str):
        from .models import TABLES

        model = TABLES.get(table)
        if model is None:
            raise StorageError(f"Unknown table '{table}'")
        return model

    def create(self, table: str, values: Mapping[str, Any]) -> Any:
        model = self._model(table)
        with self.session_scope() as session:
            row = model(**values)
            session.add(row)
            session.flush()
            return row

    def find_many(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Any]:
        model = self._model(table)
        stmt = select(model)
        for column, value in (filters or {}).items():
            stmt = stmt.where(getattr(model, column) == value)
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        else:
            stmt = stmt.order_by(model.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.session_scope() as session:
            return list(session.scalars(stmt).all())

    def find_one(self, table: str, filters: Mapping[str, Any]) -> Any | None:
        rows = self.find_many(table, filters, limit=1)
        return rows[0] if rows else None

    def find_by_id(self, table: str, row_id: int) -> Any | None:
        model = self._model(table)
        with self.session_scope() as session:
            return session.get(model, row_id)

    def update(self, table: str, row_id: int, values: Mapping[str, Any]) -> Any | None:
        model = self._model(table)
        with self.session_scope() as session:
            row = session.get(model, row_id)
            if row is None:
                return None
            for column, value in values.items():
                setattr(row, column, value)
            session.flush()
            return row

    def increment(
        self,
        table: str,
        row_id: int,
        deltas: Mapping[str, float | int],
        *,
        values: Mapping[str, Any] | None = None,
        where: Mapping[str, Any] | None = None,
    ) -> bool:
        """Atomically add ``deltas`` to numeric columns in a single UPDATE statement."""
        model = self._model(table)
        assignments: dict[str, Any] = {
            column: getattr(model, column) + delta for column, delta in deltas.items()
        }
        assignments.update(values or {})
        stmt = update(model).where(model.id == row_id)
        for column, value in (where or {}).items():
            stmt = stmt.where(getattr(model, column) == value)
        with self.session_scope() as session:
            result = session.execute(stmt.values(**assignments))
            return bool(result.rowcount)

    def update_where(
        self,
        table: str,
        row_id: int,
        values: Mapping[str, Any],
        *,
        where_not: Mapping[str, Any],
    ) -> bool:
        """Conditional update applied only when the given columns differ."""
        model = self._model(table)
        stmt = update(model).where(model.id == row_id)
        for column, value in where_not.items():
            stmt = stmt.where(getattr(model, column) != value)
        with self.session_scope() as session:
            result = session.execute(stmt.values(**values))
            return bool(result.rowcount)
