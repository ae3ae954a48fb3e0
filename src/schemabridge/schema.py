"""Schema backend: lists the relations of the configured database.

Used by the tool responder (one request at a time, long-lived process), by
the in-process SDK tool, and by ``GET /api/schema``.
"""

import logging

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from schemabridge.errors import ToolExecutionError

logger = logging.getLogger(__name__)


def format_tables(tables: list[str]) -> str:
    """Text payload returned by the ``check_schema`` tool."""
    return f"Tables: {', '.join(tables)}\nCount: {len(tables)}"


class SchemaInspector:
    """Reads table names through a SQLAlchemy engine."""

    def __init__(self, database_url: str, engine: Engine | None = None):
        self.database_url = database_url
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(self.database_url, pool_pre_ping=True)
        return self._engine

    def reconnect(self) -> None:
        """Drop pooled connections so the next query opens a fresh one."""
        try:
            self.engine.dispose()
            with self.engine.connect():
                pass
        except SQLAlchemyError as e:
            raise ToolExecutionError(f"Database connection failed: {e}") from e

    def table_names(self) -> list[str]:
        """Return relation names in the order the database reports them."""
        try:
            return list(inspect(self.engine).get_table_names())
        except SQLAlchemyError as e:
            raise ToolExecutionError(f"Schema query failed: {e}") from e

    def check_schema(self) -> list[str]:
        """Reconnect, then list tables."""
        self.reconnect()
        tables = self.table_names()
        logger.debug("check_schema: %d tables", len(tables))
        return tables

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
