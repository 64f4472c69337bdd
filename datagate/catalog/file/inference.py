# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""CSV parsing and SQLite column type inference for uploaded spreadsheets."""

import csv
import io
import math
import re
from dataclasses import dataclass
from typing import Optional, Union

import pandas as pd

from datagate.errors import MaterializationError

SQLITE_TYPES = ("INTEGER", "REAL", "BOOLEAN", "DATETIME", "TEXT")
DEFAULT_SAMPLE_ROWS = 500

BOOLEAN_TOKENS = frozenset({"true", "false", "yes", "no", "y", "n", "1", "0"})
BOOLEAN_WORDS = frozenset({"true", "false", "yes", "no", "y", "n"})
TRUE_TOKENS = frozenset({"true", "yes", "y", "1"})

_INTEGER = re.compile(r"^[-+]?\d+$")
_NUMERIC = re.compile(r"^[-+]?\d+(\.\d+)?([eE][-+]?\d+)?$")
# A date needs at least one of these, so bare numbers never read as dates
_DATE_SEPARATOR = re.compile(r"[T:\-/\s]")
_NON_ALPHANUMERIC_RUN = re.compile(r"[^a-z0-9]+")

BOM = "\ufeff"


@dataclass(frozen=True)
class InferredColumn:
    """A normalized column name and the SQLite type chosen for it."""
    name: str
    sqlite_type: str

    def to_dict(self) -> dict:
        return {"name": self.name, "sqlite_type": self.sqlite_type}


def normalize_headers(raw_headers: list[str]) -> list[str]:
    """Turn raw header cells into unique lower-case identifiers.

    Each run of non-alphanumeric characters becomes one ``_`` and edge
    underscores are trimmed, so ``"Order-ID"`` becomes ``order_id`` and
    ``"Amount ($)"`` becomes ``amount``. A header with nothing left becomes
    ``column_N`` (1-based); repeats get ``_2``, ``_3``, ... suffixes.
    """
    used: set[str] = set()
    headers = []
    for i, raw in enumerate(raw_headers):
        base = _NON_ALPHANUMERIC_RUN.sub("_", (raw or "").strip().lower()).strip("_") or f"column_{i + 1}"
        name, n = base, 1
        while name in used:
            n += 1
            name = f"{base}_{n}"
        used.add(name)
        headers.append(name)
    return headers


def parse_csv_rows(content: str, delimiter: str = ",") -> tuple[list[str], list[list[str]]]:
    """Parse CSV text into normalized headers and rows padded to header width.

    Raises:
        MaterializationError: If the text is empty, the header row is empty,
            or the text is not valid CSV for ``delimiter``.
    """
    if content.startswith(BOM):
        content = content[len(BOM):]

    try:
        reader = csv.reader(io.StringIO(content, newline=""), delimiter=delimiter)
        parsed = [row for row in reader if row]
    except (csv.Error, TypeError) as e:
        raise MaterializationError(f"Could not parse CSV: {e}") from e

    if not parsed:
        raise MaterializationError("CSV file is empty")
    header_row = parsed[0]
    if not any(cell.strip() for cell in header_row) and len(header_row) <= 1:
        raise MaterializationError("CSV header row is empty")

    headers = normalize_headers(header_row)
    width = len(headers)
    rows = [(row + [""] * (width - len(row)))[:width] for row in parsed[1:]]
    return headers, rows


def is_integer_token(value: str) -> bool:
    return bool(_INTEGER.match(value.strip()))


def is_numeric_token(value: str) -> bool:
    v = value.strip()
    return bool(v) and bool(_NUMERIC.match(v))


def parse_timestamp(value: str) -> Optional[pd.Timestamp]:
    """Parse a date/time string as a UTC timestamp, or None."""
    try:
        ts = pd.to_datetime(value, utc=True, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts


def is_date_token(value: str) -> bool:
    v = value.strip()
    if not v or not _DATE_SEPARATOR.search(v):
        return False
    return parse_timestamp(v) is not None


def infer_column_type(values: list[str]) -> str:
    """Pick the narrowest SQLite type that fits every non-empty value.

    BOOLEAN needs at least one word form (true/yes/n/...), so a 0/1 column
    stays INTEGER.
    """
    non_empty = [v.strip() for v in values if v and v.strip()]
    if not non_empty:
        return "TEXT"

    lower = [v.lower() for v in non_empty]
    if all(v in BOOLEAN_TOKENS for v in lower) and any(v in BOOLEAN_WORDS for v in lower):
        return "BOOLEAN"
    if all(is_integer_token(v) for v in non_empty):
        return "INTEGER"
    if all(is_numeric_token(v) for v in non_empty):
        return "REAL"
    if all(is_date_token(v) for v in non_empty):
        return "DATETIME"
    return "TEXT"


def infer_column_types(
    headers: list[str], rows: list[list[str]], sample_rows: int = DEFAULT_SAMPLE_ROWS
) -> list[InferredColumn]:
    """Infer one type per column from the first ``sample_rows`` rows."""
    sample = rows[:sample_rows]
    return [
        InferredColumn(name=name, sqlite_type=infer_column_type([row[col] for row in sample]))
        for col, name in enumerate(headers)
    ]


def _iso_utc(ts: pd.Timestamp) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%S") + f".{ts.microsecond // 1000:03d}Z"


def coerce_value(value: str, sqlite_type: str) -> Union[int, float, str, None]:
    """Convert a cell for insertion. Empty cells and failed conversions become None."""
    trimmed = (value or "").strip()
    if not trimmed:
        return None

    if sqlite_type == "INTEGER":
        try:
            return int(trimmed)
        except ValueError:
            return None

    if sqlite_type == "REAL":
        try:
            number = float(trimmed)
        except ValueError:
            return None
        return number if math.isfinite(number) else None

    if sqlite_type == "BOOLEAN":
        return 1 if trimmed.lower() in TRUE_TOKENS else 0

    if sqlite_type == "DATETIME":
        ts = parse_timestamp(trimmed)
        return _iso_utc(ts) if ts is not None else None

    return trimmed
