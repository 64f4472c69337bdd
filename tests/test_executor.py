# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tests for the guarded query pipeline."""

from unittest.mock import MagicMock, patch

import pytest

from datagate.config import Config, GuardrailsConfig, QueryConfig, set_config
from datagate.errors import GuardrailRejection, QueryTimeoutError, UnknownConnectorType
from datagate.executor import (
    NO_SCOPE_MESSAGE,
    check_data_source,
    load_scoped_schema,
    run_guarded_query,
)
from datagate.models import DataSource, QueryResult


# =============================================================================
# Mocked connector
# =============================================================================

def create_mock_factory(tables=("public.orders",), dialect="postgresql"):
    factory = MagicMock()
    factory.dialect = dialect
    client = factory.create_client.return_value
    client.get_allowed_tables.side_effect = lambda names=None: [
        t for t in tables if names is None or t in names
    ]
    client.execute_query.return_value = QueryResult(fields=["id"], rows=[{"id": 1}], row_count=1)
    return factory, client


@pytest.fixture
def pg_ds():
    return DataSource(id="wh", type="postgres", host="db", database="app", user="r", scope=["public.orders"])


class TestPipelineWithMockConnector:

    def test_limit_and_timeout_defaults(self, pg_ds):
        factory, client = create_mock_factory()
        with patch("datagate.executor.get_connector", return_value=factory):
            result = run_guarded_query(pg_ds, "SELECT * FROM orders")

        assert result.rows == [{"id": 1}]
        client.get_allowed_tables.assert_called_once_with(["public.orders"])
        client.execute_query.assert_called_once_with("SELECT * FROM orders LIMIT 5000", timeout_ms=10000)
        client.disconnect.assert_called_once()

    def test_explicit_bounds(self, pg_ds):
        factory, client = create_mock_factory()
        with patch("datagate.executor.get_connector", return_value=factory):
            run_guarded_query(pg_ds, "SELECT * FROM orders;", max_rows=25, timeout_ms=750)
        client.execute_query.assert_called_once_with("SELECT * FROM orders LIMIT 25", timeout_ms=750)

    def test_bounds_from_config(self, pg_ds):
        set_config(Config(query=QueryConfig(max_rows=50, timeout_ms=1234)))
        factory, client = create_mock_factory()
        with patch("datagate.executor.get_connector", return_value=factory):
            run_guarded_query(pg_ds, "SELECT * FROM orders")
        client.execute_query.assert_called_once_with("SELECT * FROM orders LIMIT 50", timeout_ms=1234)

    def test_rejection_disconnects_without_executing(self, pg_ds):
        factory, client = create_mock_factory()
        with patch("datagate.executor.get_connector", return_value=factory):
            with pytest.raises(GuardrailRejection) as exc_info:
                run_guarded_query(pg_ds, 'SELECT * FROM "pg_catalog"."pg_authid"')

        assert exc_info.value.reason == 'Table not allowed: "pg_catalog"."pg_authid"'
        client.execute_query.assert_not_called()
        client.disconnect.assert_called_once()

    def test_scope_limits_allowlist(self, pg_ds):
        factory, client = create_mock_factory(tables=("public.orders", "public.secrets"))
        with patch("datagate.executor.get_connector", return_value=factory):
            with pytest.raises(GuardrailRejection, match="Table not allowed: secrets"):
                run_guarded_query(pg_ds, "SELECT * FROM secrets")

    def test_scoped_tables_argument_overrides_data_source(self, pg_ds):
        factory, client = create_mock_factory(tables=("public.orders", "public.secrets"))
        with patch("datagate.executor.get_connector", return_value=factory):
            run_guarded_query(pg_ds, "SELECT * FROM secrets", scoped_tables=[" public.secrets ", "public.secrets"])
        client.get_allowed_tables.assert_called_once_with(["public.secrets"])

    def test_scoped_table_missing_from_database(self, pg_ds):
        factory, client = create_mock_factory(tables=())
        with patch("datagate.executor.get_connector", return_value=factory):
            with pytest.raises(GuardrailRejection, match="Table not allowed: orders"):
                run_guarded_query(pg_ds, "SELECT * FROM orders")

    @pytest.mark.parametrize("scope", [[], ["", "  "]])
    def test_empty_scope(self, pg_ds, scope):
        factory, client = create_mock_factory()
        with patch("datagate.executor.get_connector", return_value=factory):
            with pytest.raises(GuardrailRejection) as exc_info:
                run_guarded_query(pg_ds.model_copy(update={"scope": scope}), "SELECT 1")
        assert exc_info.value.reason == NO_SCOPE_MESSAGE
        factory.create_client.assert_not_called()

    def test_execution_error_still_disconnects(self, pg_ds):
        factory, client = create_mock_factory()
        client.execute_query.side_effect = QueryTimeoutError("Query timed out", timeout_ms=10000)
        with patch("datagate.executor.get_connector", return_value=factory):
            with pytest.raises(QueryTimeoutError):
                run_guarded_query(pg_ds, "SELECT * FROM orders")
        client.disconnect.assert_called_once()

    def test_guardrails_follow_connector_dialect(self, pg_ds):
        set_config(Config(guardrails=GuardrailsConfig(strict_parse=True)))
        factory, client = create_mock_factory(tables=("orders",), dialect="mysql")
        with patch("datagate.executor.get_connector", return_value=factory):
            with pytest.raises(GuardrailRejection, match="Table not allowed: secrets"):
                run_guarded_query(
                    pg_ds.model_copy(update={"scope": ["orders"]}),
                    "SELECT * FROM orders, secrets",
                )

    def test_unknown_type(self):
        ds = DataSource(id="x", type="oracle", scope=["t"])
        with pytest.raises(UnknownConnectorType):
            run_guarded_query(ds, "SELECT * FROM t")


# =============================================================================
# Real connectors
# =============================================================================

class TestPipelineEndToEnd:

    def test_csv_sum(self, make_csv_datasource):
        result = run_guarded_query(make_csv_datasource(), "SELECT SUM(amount) AS total FROM sales_data")
        assert result.fields == ["total"]
        assert result.rows[0]["total"] == pytest.approx(210.45)

    def test_csv_rejects_write(self, make_csv_datasource):
        with pytest.raises(GuardrailRejection, match="Only SELECT"):
            run_guarded_query(make_csv_datasource(), "DELETE FROM sales_data")

    def test_sqlite_join(self, sqlite_datasource):
        result = run_guarded_query(
            sqlite_datasource,
            "SELECT c.name, SUM(o.total) AS spent FROM orders o JOIN customers c ON c.id = o.customer_id "
            "GROUP BY c.name ORDER BY spent DESC",
        )
        assert result.rows == [{"name": "Ada", "spent": 150.5}, {"name": "Grace", "spent": 75.25}]

    def test_sqlite_out_of_scope_table(self, sqlite_datasource):
        ds = sqlite_datasource.model_copy(update={"scope": ["orders"]})
        with pytest.raises(GuardrailRejection, match="Table not allowed: customers"):
            run_guarded_query(ds, "SELECT * FROM customers")

    def test_sqlite_limit(self, sqlite_datasource):
        result = run_guarded_query(sqlite_datasource, "SELECT * FROM orders ORDER BY id", max_rows=2)
        assert [r["id"] for r in result.rows] == [1, 2]

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM/**/customers",
        "SELECT * FROM -- orders\n customers",
        "SELECT * FROM orders ORDER BY id -- everything",
    ])
    def test_sqlite_comments_rejected(self, sqlite_datasource, sql):
        ds = sqlite_datasource.model_copy(update={"scope": ["orders"]})
        with pytest.raises(GuardrailRejection, match="SQL comments not allowed"):
            run_guarded_query(ds, sql)

    def test_scoped_schema(self, sqlite_datasource):
        ds = sqlite_datasource.model_copy(update={"scope": ["customers"]})
        assert load_scoped_schema(ds) == "customers.id integer\ncustomers.name text"

    def test_scoped_schema_requires_scope(self, sqlite_datasource):
        with pytest.raises(GuardrailRejection, match="No monitored tables"):
            load_scoped_schema(sqlite_datasource, scoped_tables=[])

    def test_check_data_source(self, sqlite_datasource, make_csv_datasource):
        assert check_data_source(sqlite_datasource).ok is True
        assert check_data_source(make_csv_datasource("")).ok is False
