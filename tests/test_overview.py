# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tests for the schema-only dataset overview."""

import pytest

from datagate.catalog.overview import (
    EMPTY_SCHEMA_SUMMARY,
    OVERVIEW_FIELDS,
    build_dataset_overview,
    is_dataset_overview_question,
)
from datagate.executor import answer_overview_question, load_dataset_overview


# =============================================================================
# build_dataset_overview
# =============================================================================

class TestBuildDatasetOverview:

    def test_one_row_per_table(self):
        ddl = "\n".join([
            "orders.id integer",
            "orders.total numeric",
            "orders.placed_at timestamp with time zone",
            "orders.note text",
            "customers.name text",
        ])
        result = build_dataset_overview(ddl)
        assert result.fields == OVERVIEW_FIELDS
        assert result.row_count == 2
        assert result.rows == [
            {
                "table": "orders",
                "columnCount": 4,
                "numericColumns": 2,
                "temporalColumns": 1,
                "sampleColumns": "id, total, placed_at, note",
            },
            {
                "table": "customers",
                "columnCount": 1,
                "numericColumns": 0,
                "temporalColumns": 0,
                "sampleColumns": "name",
            },
        ]

    def test_sample_columns_capped_at_six(self):
        ddl = "\n".join(f"wide.c{i} text" for i in range(1, 10))
        (row,) = build_dataset_overview(ddl).rows
        assert row["columnCount"] == 9
        assert row["sampleColumns"] == "c1, c2, c3, c4, c5, c6"

    @pytest.mark.parametrize("ddl", ["", "   \n", "nospace\nunqualified integer"])
    def test_empty_schema_summary(self, ddl):
        result = build_dataset_overview(ddl)
        assert result.fields == ["summary"]
        assert result.rows == [{"summary": EMPTY_SCHEMA_SUMMARY}]
        assert result.row_count == 1


# =============================================================================
# is_dataset_overview_question
# =============================================================================

class TestOverviewQuestion:

    @pytest.mark.parametrize("question", [
        "What data do I have?",
        "what is this database about",
        "Can you tell me what this spreadsheet is about?",
        "Give me a summary of the dataset",
        "overview of this CSV please",
        "What am I looking at",
        "Describe the database",
    ])
    def test_matches(self, question):
        assert is_dataset_overview_question(question)

    @pytest.mark.parametrize("question", [
        "",
        "   ",
        None,
        "What is the total revenue by month?",
        "Describe the top customers",
        "summary of orders",
        "what data do we have on refunds",
    ])
    def test_rejects(self, question):
        assert not is_dataset_overview_question(question)


# =============================================================================
# Executor entry points
# =============================================================================

class TestExecutorOverview:

    def test_load_dataset_overview(self, sqlite_datasource):
        result = load_dataset_overview(sqlite_datasource)
        assert [row["table"] for row in result.rows] == ["customers", "orders"]
        orders = result.rows[1]
        assert orders["columnCount"] == 4
        assert orders["numericColumns"] == 3
        assert orders["temporalColumns"] == 1
        assert orders["sampleColumns"] == "id, customer_id, total, placed_at"

    def test_scoped_overview(self, sqlite_datasource):
        result = answer_overview_question(sqlite_datasource, "What data do I have?", scoped_tables=["customers"])
        assert result.rows == [{
            "table": "customers",
            "columnCount": 2,
            "numericColumns": 1,
            "temporalColumns": 0,
            "sampleColumns": "id, name",
        }]

    def test_other_questions_fall_through(self, sqlite_datasource):
        assert answer_overview_question(sqlite_datasource, "How many orders were placed?") is None
