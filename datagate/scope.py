# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Monitored-table scope of a data source."""

from typing import Iterable

from datagate.models import DataSource


def normalize_tables(tables: Iterable[str]) -> list[str]:
    """Trim, drop blanks and duplicates, and sort."""
    return sorted({t.strip() for t in tables if t and t.strip()})


def replace_scope(ds: DataSource, tables: Iterable[str]) -> DataSource:
    """Return a copy of ``ds`` monitoring exactly ``tables``."""
    return ds.model_copy(update={"scope": normalize_tables(tables)})
