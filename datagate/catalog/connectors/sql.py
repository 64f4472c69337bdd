# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""SQLAlchemy-backed client shared by the relational connectors.

Each client owns one engine and one connection. Statements run inside an
explicit transaction that also carries the dialect's statement timeout;
the transaction commits on success and rolls back on failure.
"""

import logging
import time
from abc import abstractmethod
from typing import Any, Iterable, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, DisconnectionError, SQLAlchemyError

from datagate.catalog.connectors.base import (
    DEFAULT_TIMEOUT_MS,
    ConnectorClient,
    intersect_tables,
    is_timeout_error,
)
from datagate.errors import (
    DataSourceConnectionError,
    DatagateError,
    QueryExecutionError,
    QueryTimeoutError,
)
from datagate.guardrails import enforce_limit
from datagate.models import ConnectionTestResult, QueryResult

logger = logging.getLogger(__name__)


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


def _driver_message(error: BaseException) -> str:
    orig = getattr(error, "orig", None)
    return str(orig) if orig is not None else str(error)


class SQLAlchemyClient(ConnectorClient):
    """Relational client over a SQLAlchemy engine.

    Subclasses provide the engine, the metadata queries and the per-dialect
    timeout statement.
    """

    # Rows: (schema, table, column, data_type) ordered for output
    SCHEMA_QUERY: str = ""
    # Rows: (schema, table)
    TABLES_QUERY: str = ""

    def __init__(self, ds, cache=None):
        super().__init__(ds, cache)
        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None

    @abstractmethod
    def _create_engine(self) -> Engine:
        pass

    @abstractmethod
    def _apply_timeout(self, conn: Connection, timeout_ms: int) -> None:
        """Bound the next statement on ``conn`` to ``timeout_ms``."""
        pass

    def _clear_timeout(self, conn: Connection) -> None:
        """Undo anything ``_apply_timeout`` left on the connection."""

    def _qualify(self, schema: Optional[str], table: str) -> str:
        return f"{schema}.{table}" if schema else table

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def _connect(self) -> Connection:
        if self._connection is None:
            try:
                if self._engine is None:
                    self._engine = self._create_engine()
                self._connection = self._engine.connect()
            except SQLAlchemyError as e:
                raise DataSourceConnectionError(
                    f"Could not connect to {self.ds.type} data source: {_driver_message(e)}"
                ) from e
            logger.debug(f"Connected to {self.ds.type} data source {self.ds.id}")
        return self._connection

    def _end_transaction(self, conn: Connection) -> None:
        try:
            conn.rollback()
        except SQLAlchemyError as e:
            logger.debug(f"Rollback failed on {self.ds.id}: {e}")

    def _fetch_rows(self, sql: str) -> list[Any]:
        """Run a metadata query and return its rows, leaving no open transaction."""
        conn = self._connect()
        try:
            return list(conn.execute(text(sql)))
        except SQLAlchemyError as e:
            raise self._translate_error(e, None) from e
        finally:
            self._end_transaction(conn)

    def _translate_error(self, error: SQLAlchemyError, timeout_ms: Optional[int]) -> DatagateError:
        message = _driver_message(error)
        # A dropped connection can report "timed out" too
        if isinstance(error, DisconnectionError) or (
            isinstance(error, DBAPIError) and error.connection_invalidated
        ):
            return DataSourceConnectionError(message)
        if is_timeout_error(error):
            return QueryTimeoutError(
                f"Query timed out after {timeout_ms} ms: {message}" if timeout_ms else message,
                timeout_ms=timeout_ms,
            )
        return QueryExecutionError(message)

    def test_connection(self, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> ConnectionTestResult:
        t0 = time.perf_counter()
        try:
            conn = self._connect()
            try:
                self._apply_timeout(conn, timeout_ms)
                conn.execute(text("SELECT 1"))
            finally:
                self._clear_timeout(conn)
                self._end_transaction(conn)
            return ConnectionTestResult(ok=True, elapsed_ms=_elapsed_ms(t0))
        except Exception as e:
            logger.info(f"Connection test failed for {self.ds.id}: {_driver_message(e)}")
            return ConnectionTestResult(ok=False, elapsed_ms=_elapsed_ms(t0), error=_driver_message(e))

    def _load_schema(self) -> str:
        lines = [
            f"{self._qualify(schema, table)}.{column} {data_type}"
            for schema, table, column, data_type in self._fetch_rows(self.SCHEMA_QUERY)
        ]
        return "\n".join(lines)

    def get_allowed_tables(self, candidate_names: Optional[Iterable[str]] = None) -> list[str]:
        discovered = [self._qualify(schema, table) for schema, table in self._fetch_rows(self.TABLES_QUERY)]
        return intersect_tables(discovered, candidate_names)

    def execute_query(
        self,
        sql: str,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        limit_rows: Optional[int] = None,
    ) -> QueryResult:
        statement = enforce_limit(sql, limit_rows, self.ds.type) if limit_rows else sql
        conn = self._connect()
        t0 = time.perf_counter()

        # Clear any transaction left open by autobegin
        if conn.in_transaction():
            self._end_transaction(conn)
        trans = conn.begin()
        try:
            self._apply_timeout(conn, timeout_ms)
            # Raw driver execution: no bind-parameter parsing of the user's SQL
            result = conn.exec_driver_sql(statement, execution_options={"no_parameters": True})
            fields = list(result.keys()) if result.returns_rows else []
            rows = [dict(row) for row in result.mappings()] if result.returns_rows else []
            trans.commit()
        except SQLAlchemyError as e:
            self._rollback(trans)
            raise self._translate_error(e, timeout_ms) from e
        except Exception:
            self._rollback(trans)
            raise
        finally:
            self._clear_timeout(conn)

        logger.debug(f"Query on {self.ds.id} returned {len(rows)} rows in {_elapsed_ms(t0)} ms")
        return QueryResult(fields=fields, rows=rows, row_count=len(rows))

    def _rollback(self, trans) -> None:
        try:
            trans.rollback()
        except Exception as e:
            logger.debug(f"Rollback failed on {self.ds.id}: {e}")

    def disconnect(self) -> None:
        if self._connection is not None:
            try:
                self._connection.close()
            except Exception as e:
                logger.debug(f"Error closing connection for {self.ds.id}: {e}")
            self._connection = None
        if self._engine is not None:
            try:
                self._engine.dispose()
            except Exception as e:
                logger.debug(f"Error disposing engine for {self.ds.id}: {e}")
            self._engine = None
