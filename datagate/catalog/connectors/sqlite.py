# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""SQLite connector. ``DataSource.database`` is the file path or ``:memory:``."""

import logging
import time
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from datagate.catalog.connectors.base import ConnectorFactory, ParamValidation, intersect_tables
from datagate.catalog.connectors.sql import SQLAlchemyClient
from datagate.catalog.schema_cache import SchemaCache
from datagate.models import DataSource

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"
# SQLite VM instructions between deadline checks
PROGRESS_INTERVAL = 1000

TABLES_SQL = (
    "SELECT name FROM sqlite_master "
    "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
)


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def install_deadline(conn: Connection, timeout_ms: int) -> None:
    """Interrupt statements on ``conn`` that run past ``timeout_ms``.

    The interrupted statement fails with ``sqlite3.OperationalError: interrupted``.
    """
    deadline = time.monotonic() + max(1, int(timeout_ms)) / 1000.0

    def _check_deadline() -> int:
        return 1 if time.monotonic() > deadline else 0

    conn.connection.driver_connection.set_progress_handler(_check_deadline, PROGRESS_INTERVAL)


def remove_deadline(conn: Connection) -> None:
    conn.connection.driver_connection.set_progress_handler(None, PROGRESS_INTERVAL)


class SQLiteClient(SQLAlchemyClient):
    dialect = "sqlite"

    def _create_engine(self) -> Engine:
        path = self.ds.database or MEMORY_DATABASE
        if path == MEMORY_DATABASE:
            return create_engine("sqlite://")
        return create_engine(f"sqlite:///{path}")

    def _apply_timeout(self, conn: Connection, timeout_ms: int) -> None:
        install_deadline(conn, timeout_ms)

    def _clear_timeout(self, conn: Connection) -> None:
        try:
            remove_deadline(conn)
        except Exception as e:
            logger.debug(f"Could not clear SQLite progress handler: {e}")

    def _table_names(self) -> list[str]:
        return [row[0] for row in self._fetch_rows(TABLES_SQL)]

    def _table_columns(self, table: str) -> list[tuple[str, str]]:
        # (cid, name, type, notnull, dflt_value, pk)
        rows = self._fetch_rows(f"PRAGMA table_info({quote_identifier(table)})")
        return [(row[1], row[2] or "") for row in rows]

    def _load_schema(self) -> str:
        lines = [
            f"{table}.{column} {data_type.lower()}"
            for table in self._table_names()
            for column, data_type in self._table_columns(table)
        ]
        return "\n".join(lines)

    def get_allowed_tables(self, candidate_names: Optional[Iterable[str]] = None) -> list[str]:
        return intersect_tables(self._table_names(), candidate_names)


class SQLiteConnector(ConnectorFactory):
    type = "sqlite"
    display_name = "SQLite"
    dialect = "sqlite"

    def create_client(self, ds: DataSource, cache: Optional[SchemaCache] = None) -> SQLiteClient:
        return SQLiteClient(ds, cache)

    def validate_params(self, params: Mapping[str, Any]) -> ParamValidation:
        if not params.get("database"):
            return ParamValidation(ok=False, errors=[
                "Database file path is required (or use ':memory:' for in-memory database)"
            ])
        return ParamValidation(ok=True)
