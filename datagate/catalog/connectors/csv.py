# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Spreadsheet uploads queried through a private in-memory SQLite table.

On first use the client loads the stored CSV bytes, infers a SQLite type
per column from a sample, and inserts every row into one table. The table
lives only as long as the client; disconnect discards it.

    ds = DataSource(id="sales", type="csv", metadata={
        "storage": "inline_base64",
        "csv_base64": base64.b64encode(b"order_id,amount\\n1,199.95\\n").decode(),
        "table_name": "sales_data",
    })
    with CsvConnector().create_client(ds) as client:
        client.execute_query("SELECT SUM(amount) AS total FROM sales_data")
"""

import logging
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from datagate.catalog.connectors.base import (
    ConnectorFactory,
    ParamValidation,
    filter_schema_lines,
    intersect_tables,
)
from datagate.catalog.connectors.sqlite import SQLiteClient, quote_identifier
from datagate.catalog.file.inference import (
    InferredColumn,
    coerce_value,
    infer_column_types,
    parse_csv_rows,
)
from datagate.catalog.file.storage import load_csv_bytes
from datagate.catalog.schema_cache import SchemaCache
from datagate.config import get_config
from datagate.errors import MaterializationError
from datagate.models import DataSource

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "data"
DEFAULT_DELIMITER = ","


class CsvClient(SQLiteClient):
    """Client over one materialized spreadsheet table."""

    dialect = "sqlite"

    def __init__(self, ds: DataSource, cache: Optional[SchemaCache] = None):
        super().__init__(ds, cache)
        self.metadata: Mapping[str, Any] = ds.metadata or {}
        self.table_name: str = self.metadata.get("table_name") or DEFAULT_TABLE_NAME
        self.delimiter: str = self.metadata.get("delimiter") or DEFAULT_DELIMITER
        self.columns: list[InferredColumn] = []
        self.row_count = 0

    def _create_engine(self) -> Engine:
        # One shared connection, so the in-memory table outlives each statement
        return create_engine(
            "sqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    def _connect(self) -> Connection:
        if self._connection is None:
            conn = super()._connect()
            try:
                self._materialize(conn)
            except Exception:
                self.disconnect()
                raise
        return self._connection

    def _materialize(self, conn: Connection) -> None:
        config = get_config()
        raw = load_csv_bytes(self.metadata, config)
        headers, rows = parse_csv_rows(raw.decode("utf-8", errors="replace"), self.delimiter)
        self.columns = infer_column_types(headers, rows, config.csv.sample_rows)

        table = quote_identifier(self.table_name)
        names = [quote_identifier(c.name) for c in self.columns]
        column_defs = ", ".join(f"{name} {c.sqlite_type}" for name, c in zip(names, self.columns))
        insert_sql = (
            f"INSERT INTO {table} ({', '.join(names)}) "
            f"VALUES ({', '.join('?' for _ in names)})"
        )
        types = [c.sqlite_type for c in self.columns]

        try:
            with conn.begin():
                conn.exec_driver_sql(f"CREATE TABLE {table} ({column_defs})")
                if rows:
                    conn.exec_driver_sql(
                        insert_sql,
                        [tuple(coerce_value(v, t) for v, t in zip(row, types)) for row in rows],
                    )
        except SQLAlchemyError as e:
            raise MaterializationError(
                f"Could not load spreadsheet into table {self.table_name}: {e}"
            ) from e

        self.row_count = len(rows)
        logger.debug(
            f"Materialized {self.row_count} rows into {self.table_name} "
            f"({', '.join(f'{c.name} {c.sqlite_type}' for c in self.columns)})"
        )

    def _load_schema(self) -> str:
        lines = [
            f"{self.table_name}.{column} {data_type or 'TEXT'}"
            for column, data_type in self._table_columns(self.table_name)
        ]
        return "\n".join(lines)

    def get_schema(
        self,
        cache_key: Optional[str] = None,
        allowed_tables: Optional[Iterable[str]] = None,
    ) -> str:
        # Private to this client, never shared through the schema cache
        return filter_schema_lines(self._load_schema(), allowed_tables)

    def get_allowed_tables(self, candidate_names: Optional[Iterable[str]] = None) -> list[str]:
        return intersect_tables([self.table_name], candidate_names)

    def disconnect(self) -> None:
        super().disconnect()
        self.columns = []
        self.row_count = 0


class CsvConnector(ConnectorFactory):
    type = "csv"
    display_name = "Spreadsheet Upload"
    dialect = "sqlite"

    def create_client(self, ds: DataSource, cache: Optional[SchemaCache] = None) -> CsvClient:
        return CsvClient(ds, cache)

    def validate_params(self, params: Mapping[str, Any]) -> ParamValidation:
        metadata = params.get("metadata") or {}
        if not metadata.get("csv_base64") and not metadata.get("file_path"):
            return ParamValidation(ok=False, errors=["CSV content is required"])
        return ParamValidation(ok=True)
