# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""CSV export of query results."""

import csv
import io
from typing import Any, Iterable, Mapping, Optional

from datagate.models import DataSource

EXPORT_MAX_ROWS = 10_000


def to_csv(rows: list[Mapping[str, Any]], fields: Optional[list[str]] = None) -> str:
    """Render rows as CSV text; columns come from ``fields`` or the first row.

    Values holding a quote, comma or newline are quoted with inner quotes
    doubled. None becomes an empty cell. No trailing newline.
    """
    if not rows and not fields:
        return ""
    headers = list(fields) if fields else list(rows[0].keys())

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if row.get(h) is None else row.get(h) for h in headers])
    return buffer.getvalue().rstrip("\n")


def export_query_csv(
    ds: DataSource,
    sql: str,
    scoped_tables: Optional[Iterable[str]] = None,
    max_rows: int = EXPORT_MAX_ROWS,
) -> str:
    """Run ``sql`` through the guarded pipeline and return the rows as CSV."""
    from datagate.executor import run_guarded_query

    result = run_guarded_query(ds, sql, scoped_tables=scoped_tables, max_rows=max_rows)
    return to_csv(result.rows, result.fields)
