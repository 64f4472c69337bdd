# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Connectors for PostgreSQL, MySQL, SQLite and uploaded spreadsheets.

Importing this package registers all built-in connectors:

    from datagate.catalog.connectors import get_connector

    factory = get_connector(ds.type)
    with factory.create_client(ds) as client:
        tables = client.get_allowed_tables()
"""

from .base import (
    ConnectorClient,
    ConnectorFactory,
    ParamValidation,
    filter_schema_lines,
    is_timeout_error,
)
from .csv import CsvClient, CsvConnector
from .mysql import MySQLClient, MySQLConnector
from .postgres import PostgresClient, PostgresConnector
from .registry import get_connector, list_connector_types, register_connector, unregister_connector
from .sql import SQLAlchemyClient
from .sqlite import SQLiteClient, SQLiteConnector

register_connector(PostgresConnector())
register_connector(MySQLConnector())
register_connector(SQLiteConnector())
register_connector(CsvConnector())

__all__ = [
    # Base
    "ConnectorClient",
    "ConnectorFactory",
    "ParamValidation",
    "SQLAlchemyClient",
    "filter_schema_lines",
    "is_timeout_error",
    # Connectors
    "CsvClient",
    "CsvConnector",
    "MySQLClient",
    "MySQLConnector",
    "PostgresClient",
    "PostgresConnector",
    "SQLiteClient",
    "SQLiteConnector",
    # Registry
    "get_connector",
    "list_connector_types",
    "register_connector",
    "unregister_connector",
]
