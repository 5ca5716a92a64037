from __future__ import annotations

import asyncio
from copy import deepcopy
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import Boolean, Column, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import BackendError

Base = declarative_base()

PROGRESS_TABLE = "progress"
ANNOTATIONS_TABLE = "annotations"


class ProgressRowModel(Base):
    __tablename__ = PROGRESS_TABLE
    id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True)
    read = Column(Boolean, default=True)
    updated_at = Column(String)


class AnnotationRowModel(Base):
    __tablename__ = ANNOTATIONS_TABLE
    id = Column(String, primary_key=True)
    paragraph_key = Column(String, index=True)
    user_id = Column(String, index=True)
    content = Column(String)
    created_at = Column(String)


ROW_MODELS: Dict[str, Type[Any]] = {
    PROGRESS_TABLE: ProgressRowModel,
    ANNOTATIONS_TABLE: AnnotationRowModel,
}


class RowStore:
    """
    Remote row-store boundary. Rows are plain dicts keyed by column name and
    upserts are matched by primary key. Implementations raise `BackendError`
    (or their driver's own errors) on failure; callers decide whether to care.
    """

    async def upsert(self, table: str, rows: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    async def select(self, table: str, match: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError


class InMemoryRowStore(RowStore):
    """
    Dict-backed row store for local runs and tests. Only tables listed in
    `tables` exist; anything else behaves like a missing remote table.
    """

    def __init__(self, tables: Optional[Dict[str, List[str]]] = None):
        if tables is None:
            tables = {PROGRESS_TABLE: ["id", "user_id"], ANNOTATIONS_TABLE: ["id"]}
        self.primary_keys = tables
        self.tables: Dict[str, Dict[tuple, Dict[str, Any]]] = {name: {} for name in tables}

    def _table(self, table: str) -> Dict[tuple, Dict[str, Any]]:
        if table not in self.tables:
            raise BackendError(f'relation "{table}" does not exist', status=404)
        return self.tables[table]

    async def upsert(self, table: str, rows: List[Dict[str, Any]]) -> None:
        store = self._table(table)
        pk_columns = self.primary_keys[table]
        for row in rows:
            missing = [col for col in pk_columns if row.get(col) in (None, "")]
            if missing:
                raise BackendError(f"Missing primary key column(s) {missing} for {table}")
            pk = tuple(row[col] for col in pk_columns)
            merged = dict(store.get(pk, {}))
            merged.update(deepcopy(row))
            store[pk] = merged

    async def select(self, table: str, match: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        store = self._table(table)
        match = match or {}
        return [
            deepcopy(row)
            for row in store.values()
            if all(row.get(col) == value for col, value in match.items())
        ]


class SqlAlchemyRowStore(RowStore):
    """
    SQL-backed row store using SQLAlchemy. Works with SQLite/Postgres URLs.
    With `create_tables=False` the schema is left alone, so a database
    without the reading tables rejects upserts the way an unprovisioned
    remote project would.

    Session work runs in a worker thread through `asyncio.to_thread`.
    """

    def __init__(self, database_url: str, create_tables: bool = True):
        engine_kwargs: Dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url.rstrip("/").endswith(":"):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, future=True, **engine_kwargs)
        if create_tables:
            Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    def _model_for(self, table: str) -> Type[Any]:
        model = ROW_MODELS.get(table)
        if model is None:
            raise BackendError(f'relation "{table}" does not exist', status=404)
        return model

    async def upsert(self, table: str, rows: List[Dict[str, Any]]) -> None:
        await asyncio.to_thread(self._upsert_sync, table, rows)

    async def select(self, table: str, match: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._select_sync, table, match)

    def _upsert_sync(self, table: str, rows: List[Dict[str, Any]]) -> None:
        model = self._model_for(table)
        columns = set(model.__table__.columns.keys())
        with self._session() as session:
            for row in rows:
                unknown = set(row) - columns
                if unknown:
                    raise BackendError(f"Unknown column(s) {sorted(unknown)} for {table}")
                session.merge(model(**row))
            session.commit()

    def _select_sync(self, table: str, match: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        model = self._model_for(table)
        stmt = select(model)
        for col, value in (match or {}).items():
            stmt = stmt.where(getattr(model, col) == value)
        with self._session() as session:
            models = session.execute(stmt).scalars().all()
            return [
                {col: getattr(m, col) for col in model.__table__.columns.keys()}
                for m in models
            ]
