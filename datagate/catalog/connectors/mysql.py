# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""MySQL connector (PyMySQL via SQLAlchemy)."""

import logging
from typing import Any, Mapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from datagate.catalog.connectors.base import ConnectorFactory, ParamValidation, validate_network_params
from datagate.catalog.connectors.sql import SQLAlchemyClient
from datagate.catalog.schema_cache import SchemaCache
from datagate.models import DataSource
from datagate.security.secrets import decrypt_data_source_password, decrypt_data_source_url

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3306
CONNECT_TIMEOUT_SECONDS = 10


def build_mysql_url(ds: DataSource) -> URL | str:
    """Connection URL for a MySQL data source, decrypting secrets at use."""
    direct = decrypt_data_source_url(ds)
    if direct:
        if direct.startswith("mysql://"):
            return "mysql+pymysql://" + direct[len("mysql://"):]
        return direct
    return URL.create(
        "mysql+pymysql",
        username=ds.user or None,
        password=decrypt_data_source_password(ds),
        host=ds.host or "localhost",
        port=ds.port or DEFAULT_PORT,
        database=ds.database or None,
    )


class MySQLClient(SQLAlchemyClient):
    """MySQL client scoped to the connection's current database."""

    dialect = "mysql"

    SCHEMA_QUERY = """
        SELECT TABLE_SCHEMA, TABLE_NAME, COLUMN_NAME, DATA_TYPE
        FROM information_schema.COLUMNS
        WHERE TABLE_SCHEMA = DATABASE()
        ORDER BY TABLE_NAME, ORDINAL_POSITION
    """

    TABLES_QUERY = """
        SELECT TABLE_SCHEMA, TABLE_NAME
        FROM information_schema.TABLES
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
    """

    def _create_engine(self) -> Engine:
        return create_engine(
            build_mysql_url(self.ds),
            connect_args={"connect_timeout": CONNECT_TIMEOUT_SECONDS},
        )

    def _apply_timeout(self, conn: Connection, timeout_ms: int) -> None:
        conn.execute(text(f"SET SESSION max_execution_time = {max(1, int(timeout_ms))}"))

    def _clear_timeout(self, conn: Connection) -> None:
        # The session variable outlives the transaction; 0 means unlimited
        try:
            conn.execute(text("SET SESSION max_execution_time = 0"))
        except SQLAlchemyError as e:
            logger.debug(f"Could not reset max_execution_time on {self.ds.id}: {e}")

    def _qualify(self, schema: Optional[str], table: str) -> str:
        # Always the current database
        return table


class MySQLConnector(ConnectorFactory):
    type = "mysql"
    display_name = "MySQL"
    dialect = "mysql"

    def create_client(self, ds: DataSource, cache: Optional[SchemaCache] = None) -> MySQLClient:
        return MySQLClient(ds, cache)

    def validate_params(self, params: Mapping[str, Any]) -> ParamValidation:
        return validate_network_params(params)
