from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    inspect,
    insert,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from common.config import LoaderSettings
from common.errors import StoreUnreachableError


logger = logging.getLogger(__name__)

schema = MetaData()

root_table = Table(
    "tblRoot",
    schema,
    Column("Name", String(2048), nullable=False),
    Column("Export", Boolean, nullable=False, default=False),
    Column("Protected", String(4048), nullable=False),
    Column("ConfVersion", String(15), nullable=False),
    Column("EnableLocalCache", Boolean, nullable=False, default=True),
)

cons_table = Table(
    "tblCons",
    schema,
    Column("ID", Integer, primary_key=True, autoincrement=True),
    Column("ConstantID", String(128), nullable=False, unique=True),
    Column("PositionID", Integer, nullable=False, default=0),
    Column("ParentID", String(128)),
    Column("LastChange", DateTime),
    Column("Name", String(128), nullable=False),
    Column("Type", String(32), nullable=False),
    Column("Expanded", Boolean, nullable=False, default=False),
    Column("Description", String(1024), default=""),
    Column("Hostname", String(512), default=""),
    Column("Port", Integer, default=0),
    Column("Protocol", String(32), default="RDP"),
    Column("Username", String(512), default=""),
    Column("DomainName", String(512), default=""),
    Column("Password", String(1024), default=""),
    Column("Favorite", Boolean, nullable=False, default=False),
    Column("AutoConnect", Boolean, nullable=False, default=False),
)


def _unreachable(what: str, ex: SQLAlchemyError) -> StoreUnreachableError:
    return StoreUnreachableError(f"{what} failed: {ex.__class__.__name__}: {ex}")


class SqlStoreConnector:
    """
    Access to the shared connection store through SQLAlchemy Core.

    - `read_root_row()` returns None for a fresh store (no table or no row).
    - Every driver/database failure surfaces as `StoreUnreachableError`.
    - Pass `engine` to reuse an existing engine (tests, pooled apps).
    """

    def __init__(self, url: Optional[str] = None, *, engine: Optional[Engine] = None, connect_timeout: int = 15) -> None:
        if engine is None and not url:
            raise ValueError("url or engine is required")
        self._owns_engine = engine is None
        if engine is None:
            try:
                engine = create_engine(url, pool_pre_ping=True, connect_args=_connect_args(url, connect_timeout))
            except (SQLAlchemyError, ImportError) as ex:
                raise StoreUnreachableError(f"Cannot create engine: {ex}") from ex
        self._engine = engine

    @classmethod
    def from_settings(cls, settings: LoaderSettings) -> "SqlStoreConnector":
        return cls(settings.database_url(), connect_timeout=settings.connect_timeout)

    @property
    def engine(self) -> Engine:
        return self._engine

    def dispose(self) -> None:
        if self._owns_engine:
            self._engine.dispose()

    def __enter__(self) -> "SqlStoreConnector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # -------- Schema --------
    def ensure_schema(self) -> None:
        try:
            schema.create_all(self._engine)
        except SQLAlchemyError as ex:
            raise _unreachable("Creating schema", ex) from ex

    def _has_table(self, name: str) -> bool:
        return inspect(self._engine).has_table(name)

    # -------- Metadata (tblRoot) --------
    def read_root_row(self) -> Optional[Dict[str, Any]]:
        try:
            if not self._has_table(root_table.name):
                return None
            with self._engine.connect() as conn:
                row = conn.execute(select(root_table)).mappings().first()
        except SQLAlchemyError as ex:
            raise _unreachable("Reading tblRoot", ex) from ex
        return dict(row) if row is not None else None

    def write_root_row(self, values: Mapping[str, Any]) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(delete(root_table))
                conn.execute(insert(root_table).values(**values))
        except SQLAlchemyError as ex:
            raise _unreachable("Writing tblRoot", ex) from ex

    # -------- Connections (tblCons) --------
    def read_connection_rows(self) -> List[Dict[str, Any]]:
        try:
            with self._engine.connect() as conn:
                result = conn.execute(
                    select(cons_table).order_by(cons_table.c.PositionID, cons_table.c.ID)
                )
                return [dict(r) for r in result.mappings()]
        except SQLAlchemyError as ex:
            raise _unreachable("Reading tblCons", ex) from ex

    def write_connection_rows(self, rows: Iterable[Mapping[str, Any]]) -> None:
        """Replace the whole connection table with `rows`."""
        payload = [dict(r) for r in rows]
        try:
            with self._engine.begin() as conn:
                conn.execute(delete(cons_table))
                if payload:
                    conn.execute(insert(cons_table), payload)
        except SQLAlchemyError as ex:
            raise _unreachable("Writing tblCons", ex) from ex
        logger.debug("Wrote %d connection rows", len(payload))


def _connect_args(url: str, timeout: int) -> Dict[str, Any]:
    # sqlite takes `timeout`, most network drivers take `connect_timeout`
    if url.startswith("sqlite"):
        return {"timeout": timeout}
    if url.startswith("mssql+pyodbc"):
        return {"timeout": timeout}
    return {"connect_timeout": timeout}
