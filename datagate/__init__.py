# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""datagate - guarded read-only access to heterogeneous SQL data sources.

Machine-generated SQL is validated against a per-source table allowlist,
capped with LIMIT and run under a statement timeout before any rows come
back.

Submodules:
- security: Credential vault and decrypt-at-use helpers
- catalog: Schema cache, schema parser, connectors, spreadsheet uploads
- guardrails: SQL validation and LIMIT enforcement
- executor: The guarded query pipeline

Main entry points:
- run_guarded_query: Validate, limit and execute SQL for a data source
- get_connector: Connector factory for a data source type
- Config: Configuration loading from YAML
"""

from datagate.catalog.connectors import get_connector, list_connector_types, register_connector
from datagate.config import Config, get_config, set_config
from datagate.errors import (
    ConfigurationError,
    DatagateError,
    DataSourceConnectionError,
    DecryptionError,
    GuardrailRejection,
    MaterializationError,
    QueryExecutionError,
    QueryTimeoutError,
    UnknownConnectorType,
)
from datagate.executor import check_data_source, load_scoped_schema, run_guarded_query
from datagate.guardrails import GuardrailResult, enforce_limit, validate_sql
from datagate.models import ConnectionTestResult, DataSource, QueryResult

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "Config",
    "get_config",
    "set_config",
    # Models
    "ConnectionTestResult",
    "DataSource",
    "QueryResult",
    # Connectors
    "get_connector",
    "list_connector_types",
    "register_connector",
    # Guardrails
    "GuardrailResult",
    "enforce_limit",
    "validate_sql",
    # Pipeline
    "check_data_source",
    "load_scoped_schema",
    "run_guarded_query",
    # Errors
    "ConfigurationError",
    "DatagateError",
    "DataSourceConnectionError",
    "DecryptionError",
    "GuardrailRejection",
    "MaterializationError",
    "QueryExecutionError",
    "QueryTimeoutError",
    "UnknownConnectorType",
]
