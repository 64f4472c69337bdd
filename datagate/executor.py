# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Guarded execution of candidate SQL against a data source.

Pipeline for every query:
  1. Refuse when the data source has no monitored tables
  2. Allowed tables = tables discovered live, intersected with the scope
  3. Validate the SQL against the allowed tables
  4. Cap the row count with LIMIT
  5. Execute under a statement timeout
  6. Disconnect, whatever happened
"""

import logging
import time
from typing import Iterable, Optional

from datagate.catalog.connectors import get_connector
from datagate.catalog.overview import build_dataset_overview, is_dataset_overview_question
from datagate.catalog.schema_cache import SchemaCache
from datagate.config import get_config
from datagate.errors import GuardrailRejection
from datagate.guardrails import get_guardrails
from datagate.models import ConnectionTestResult, DataSource, QueryResult
from datagate.scope import normalize_tables

logger = logging.getLogger(__name__)

NO_SCOPE_MESSAGE = "No monitored tables selected for this data source. Update scope in Settings."


def _resolve_scope(ds: DataSource, scoped_tables: Optional[Iterable[str]]) -> list[str]:
    scoped = normalize_tables(ds.scope if scoped_tables is None else scoped_tables)
    if not scoped:
        raise GuardrailRejection(NO_SCOPE_MESSAGE)
    return scoped


def run_guarded_query(
    ds: DataSource,
    sql: str,
    scoped_tables: Optional[Iterable[str]] = None,
    max_rows: Optional[int] = None,
    timeout_ms: Optional[int] = None,
    cache: Optional[SchemaCache] = None,
) -> QueryResult:
    """Validate, limit and execute ``sql`` against ``ds``.

    Args:
        ds: Data source to query
        sql: Candidate SQL, typically machine-generated
        scoped_tables: Monitored tables; defaults to ``ds.scope``
        max_rows: Row cap appended as LIMIT (config ``query.max_rows``)
        timeout_ms: Statement timeout (config ``query.timeout_ms``)
        cache: Schema cache override

    Raises:
        GuardrailRejection: Empty scope, or SQL rejected by the guardrails.
        UnknownConnectorType: If ``ds.type`` has no connector.
        QueryTimeoutError: If execution exceeded ``timeout_ms``.
        QueryExecutionError: For other execution failures.
    """
    config = get_config()
    scoped = _resolve_scope(ds, scoped_tables)
    max_rows = max_rows or config.query.max_rows
    timeout_ms = timeout_ms or config.query.timeout_ms

    factory = get_connector(ds.type or "postgres")
    guards = get_guardrails(factory.dialect)
    client = factory.create_client(ds, cache)
    t0 = time.perf_counter()
    try:
        allowed = client.get_allowed_tables(scoped)
        verdict = guards.validate_sql(sql, allowed)
        if not verdict.ok:
            raise GuardrailRejection(verdict.reason)

        limited = guards.enforce_limit(sql, max_rows)
        result = client.execute_query(limited, timeout_ms=timeout_ms)
        logger.info(
            f"Executed query on {ds.id}: {result.row_count} rows "
            f"in {int((time.perf_counter() - t0) * 1000)} ms"
        )
        return result
    finally:
        client.disconnect()


def load_scoped_schema(
    ds: DataSource,
    scoped_tables: Optional[Iterable[str]] = None,
    cache: Optional[SchemaCache] = None,
) -> str:
    """Compact schema of the monitored tables only."""
    scoped = _resolve_scope(ds, scoped_tables)
    factory = get_connector(ds.type or "postgres")
    with factory.create_client(ds, cache) as client:
        allowed = client.get_allowed_tables(scoped)
        return client.get_schema(allowed_tables=allowed)


def check_data_source(ds: DataSource) -> ConnectionTestResult:
    """Test connectivity to a data source. Never raises for connection problems."""
    factory = get_connector(ds.type or "postgres")
    with factory.create_client(ds) as client:
        return client.test_connection(timeout_ms=get_config().query.test_timeout_ms)


def load_dataset_overview(
    ds: DataSource,
    scoped_tables: Optional[Iterable[str]] = None,
    cache: Optional[SchemaCache] = None,
) -> QueryResult:
    """Per-table column summary of the monitored tables, built from the schema."""
    return build_dataset_overview(load_scoped_schema(ds, scoped_tables, cache))


def answer_overview_question(
    ds: DataSource,
    question: str,
    scoped_tables: Optional[Iterable[str]] = None,
) -> Optional[QueryResult]:
    """Answer "what data do I have?"-style questions without generating SQL.

    Returns None when ``question`` is not about the data source as a whole.
    """
    if not is_dataset_overview_question(question):
        return None
    logger.debug(f"Answering overview question for {ds.id} from its schema")
    return load_dataset_overview(ds, scoped_tables)
