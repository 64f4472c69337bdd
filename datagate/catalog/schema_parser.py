# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Parse the compact schema text produced by ConnectorClient.get_schema().

Input format, one column per line:

    orders.id integer
    orders.total numeric
    analytics.events.created_at timestamp
"""

from dataclasses import dataclass, field
from typing import Optional

NUMERIC_TYPES = frozenset({
    "integer", "int", "int2", "int4", "int8", "smallint", "bigint",
    "numeric", "decimal", "real", "float", "float4", "float8",
    "double precision", "double", "money", "serial", "bigserial",
    "tinyint", "mediumint",
})

TEMPORAL_TYPES = frozenset({
    "date", "time", "timestamp", "timestamptz",
    "timestamp without time zone", "timestamp with time zone",
    "time without time zone", "time with time zone",
    "datetime", "year", "interval",
})

# information_schema.columns.data_type names containing spaces
MULTI_WORD_TYPES = (
    "timestamp without time zone", "timestamp with time zone",
    "time without time zone", "time with time zone",
    "double precision", "character varying", "bit varying",
)


@dataclass
class ParsedColumn:
    """A column with its raw type and analytic classification."""
    name: str
    type: str
    is_numeric: bool = False
    is_temporal: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "isNumeric": self.is_numeric,
            "isTemporal": self.is_temporal,
        }


@dataclass
class ParsedTable:
    """A table (``table`` or ``schema.table``) and its columns in line order."""
    name: str
    columns: list[ParsedColumn] = field(default_factory=list)

    @property
    def numeric_columns(self) -> list[ParsedColumn]:
        return [c for c in self.columns if c.is_numeric]

    @property
    def temporal_columns(self) -> list[ParsedColumn]:
        return [c for c in self.columns if c.is_temporal]

    def to_dict(self) -> dict:
        return {"name": self.name, "columns": [c.to_dict() for c in self.columns]}


def classify_type(raw_type: str) -> tuple[bool, bool]:
    """Return (is_numeric, is_temporal) for a raw type name."""
    t = raw_type.lower().strip()
    return t in NUMERIC_TYPES, t in TEMPORAL_TYPES


def _split_type(line: str) -> Optional[tuple[str, str]]:
    """Split ``line`` into (qualified column, type).

    A known multi-word type at the end of the line is kept whole; otherwise
    everything after the last space is the type.
    """
    lowered = line.lower()
    for type_name in MULTI_WORD_TYPES:
        if lowered.endswith(" " + type_name):
            cut = len(line) - len(type_name)
            return line[:cut].strip(), line[cut:]
    last_space = line.rfind(" ")
    if last_space == -1:
        return None
    return line[:last_space].strip(), line[last_space + 1:].strip()


def parse_compact_schema(ddl: str) -> list[ParsedTable]:
    """Parse compact DDL text into tables, preserving first-appearance order."""
    tables: dict[str, ParsedTable] = {}

    for line in ddl.split("\n"):
        trimmed = line.strip()
        if not trimmed:
            continue

        split = _split_type(trimmed)
        if split is None:
            continue
        qualified, data_type = split

        parts = qualified.split(".")
        if len(parts) < 2:
            continue
        column_name = parts[-1]
        table_name = ".".join(parts[:-1])

        table = tables.get(table_name)
        if table is None:
            table = tables[table_name] = ParsedTable(name=table_name)

        is_numeric, is_temporal = classify_type(data_type)
        table.columns.append(ParsedColumn(
            name=column_name,
            type=data_type,
            is_numeric=is_numeric,
            is_temporal=is_temporal,
        ))

    return list(tables.values())
