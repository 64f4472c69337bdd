# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""PostgreSQL connector (psycopg2 via SQLAlchemy)."""

import logging
from typing import Any, Mapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from datagate.catalog.connectors.base import ConnectorFactory, ParamValidation, validate_network_params
from datagate.catalog.connectors.sql import SQLAlchemyClient
from datagate.catalog.schema_cache import SchemaCache
from datagate.models import DataSource
from datagate.security.secrets import get_data_source_connection_url

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"


def _sqlalchemy_url(url: str) -> str:
    """Accept the ``postgres://`` spelling some providers hand out."""
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


class PostgresClient(SQLAlchemyClient):
    """PostgreSQL client. Tables in ``public`` are reported unqualified."""

    dialect = "postgresql"

    SCHEMA_QUERY = """
        SELECT c.table_schema, c.table_name, c.column_name, c.data_type
        FROM information_schema.columns c
        JOIN information_schema.tables t
          ON c.table_schema = t.table_schema AND c.table_name = t.table_name
        WHERE t.table_type = 'BASE TABLE'
          AND c.table_schema NOT IN ('pg_catalog', 'information_schema')
        ORDER BY c.table_schema, c.table_name, c.ordinal_position
    """

    TABLES_QUERY = """
        SELECT table_schema, table_name
        FROM information_schema.tables
        WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
          AND table_type = 'BASE TABLE'
        ORDER BY table_schema, table_name
    """

    def _create_engine(self) -> Engine:
        from datagate.config import get_config

        url = _sqlalchemy_url(get_data_source_connection_url(self.ds))
        connect_args = {}
        if get_config().postgres.ssl:
            connect_args["sslmode"] = "require"
        return create_engine(url, connect_args=connect_args)

    def _apply_timeout(self, conn: Connection, timeout_ms: int) -> None:
        # SET LOCAL lasts until the enclosing transaction ends
        conn.execute(text(f"SET LOCAL statement_timeout = {max(1, int(timeout_ms))}"))

    def _qualify(self, schema: Optional[str], table: str) -> str:
        if not schema or schema == DEFAULT_SCHEMA:
            return table
        return f"{schema}.{table}"


class PostgresConnector(ConnectorFactory):
    type = "postgres"
    display_name = "PostgreSQL"
    dialect = "postgresql"

    def create_client(self, ds: DataSource, cache: Optional[SchemaCache] = None) -> PostgresClient:
        return PostgresClient(ds, cache)

    def validate_params(self, params: Mapping[str, Any]) -> ParamValidation:
        return validate_network_params(params)
