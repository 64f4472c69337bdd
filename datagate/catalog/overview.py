# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Dataset overview answered from the schema alone, without running SQL."""

import re

from datagate.catalog.schema_parser import parse_compact_schema
from datagate.models import QueryResult

SAMPLE_COLUMN_COUNT = 6
EMPTY_SCHEMA_SUMMARY = "No tables or columns were detected in this data source yet."
OVERVIEW_FIELDS = ["table", "columnCount", "numericColumns", "temporalColumns", "sampleColumns"]

_SOURCE = r"(database|dataset|csv|spreadsheet)"

# Questions about the data source itself rather than its rows
OVERVIEW_QUESTION_PATTERNS = [
    re.compile(r"\bwhat\s+data\s+do\s+i\s+have\b", re.IGNORECASE),
    re.compile(rf"\bwhat\s+is\s+this\s+{_SOURCE}\s+about\b", re.IGNORECASE),
    re.compile(rf"\bwhat\s+this\s+{_SOURCE}\s+is\s+about\b", re.IGNORECASE),
    re.compile(rf"\bsummary\s+of\s+(this|the)\s+{_SOURCE}\b", re.IGNORECASE),
    re.compile(rf"\boverview\s+of\s+(this|the)\s+{_SOURCE}\b", re.IGNORECASE),
    re.compile(r"\bwhat\s+am\s+i\s+looking\s+at\b", re.IGNORECASE),
    re.compile(rf"\bdescribe\s+(this|the)\s+{_SOURCE}\b", re.IGNORECASE),
]


def is_dataset_overview_question(question: str) -> bool:
    """Check if a question asks what the data source contains."""
    q = (question or "").strip()
    if not q:
        return False
    return any(pattern.search(q) for pattern in OVERVIEW_QUESTION_PATTERNS)


def build_dataset_overview(ddl: str) -> QueryResult:
    """Summarize compact schema text as one row per table.

    Each row counts the table's columns, its numeric and temporal columns,
    and lists the first six column names. A schema with no tables yields a
    single ``summary`` row.
    """
    tables = parse_compact_schema(ddl)
    if not tables:
        return QueryResult(fields=["summary"], rows=[{"summary": EMPTY_SCHEMA_SUMMARY}], row_count=1)

    rows = [
        {
            "table": table.name,
            "columnCount": len(table.columns),
            "numericColumns": len(table.numeric_columns),
            "temporalColumns": len(table.temporal_columns),
            "sampleColumns": ", ".join(c.name for c in table.columns[:SAMPLE_COLUMN_COUNT]),
        }
        for table in tables
    ]
    return QueryResult(fields=list(OVERVIEW_FIELDS), rows=rows, row_count=len(rows))
