# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Turn an uploaded .csv/.xlsx/.xls file into CSV data source metadata."""

import base64
import csv
import io
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from datagate.catalog.file.inference import BOM
from datagate.catalog.file.storage import (
    STORAGE_FILESYSTEM,
    STORAGE_INLINE,
    STORAGE_OBJECT_STORE,
    upload_root,
    upload_to_object_store,
)
from datagate.config import Config, get_config
from datagate.errors import MaterializationError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".csv", ".xlsx", ".xls")
DELIMITER_CANDIDATES = (",", ";", "\t", "|")
DELIMITER_SAMPLE_ROWS = 20
MAX_HEADERS_RECORDED = 100

_UNSAFE_TABLE_CHARS = re.compile(r"[^a-zA-Z0-9_]")
_UNSAFE_FILE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_UNDERSCORES = re.compile(r"_+")


@dataclass
class SpreadsheetCsv:
    """CSV bytes extracted from an upload."""
    data: bytes
    delimiter: str = ","
    source_sheet: Optional[str] = None
    available_sheets: list[str] = field(default_factory=list)


def _decode(data: bytes) -> str:
    text = data.decode("utf-8", errors="replace")
    return text[len(BOM):] if text.startswith(BOM) else text


def _read_rows(text: str, delimiter: str, limit: Optional[int] = None) -> list[list[str]]:
    rows = []
    for row in csv.reader(io.StringIO(text, newline=""), delimiter=delimiter):
        if not row:
            continue
        rows.append(row)
        if limit is not None and len(rows) >= limit:
            break
    return rows


def detect_delimiter(data: bytes) -> str:
    """Pick the delimiter giving the widest, most even first rows.

    Score = header width * 10 - (max width - min width) over the first 20
    rows; a candidate yielding a single column is ignored. Defaults to ``,``.
    """
    text = _decode(data)
    best, best_score = ",", None
    for delimiter in DELIMITER_CANDIDATES:
        try:
            rows = _read_rows(text, delimiter, DELIMITER_SAMPLE_ROWS)
        except csv.Error:
            continue
        widths = [len(row) for row in rows]
        if not widths or widths[0] <= 1:
            continue
        score = widths[0] * 10 - (max(widths) - min(widths))
        if best_score is None or score > best_score:
            best, best_score = delimiter, score
    return best


def sanitize_table_name(raw: str) -> str:
    """``"Q1 Sales (2024)"`` -> ``q1_sales_2024``; empty results become ``data``."""
    clean = _UNDERSCORES.sub("_", _UNSAFE_TABLE_CHARS.sub("_", raw)).strip("_").lower()
    return clean or "data"


def _excel_to_csv(data: bytes, sheet_name: Optional[str]) -> SpreadsheetCsv:
    try:
        sheets = pd.read_excel(io.BytesIO(data), sheet_name=None, header=None, dtype=str)
    except Exception as e:
        logger.info(f"Workbook could not be parsed: {e}")
        raise MaterializationError(
            "Unable to parse Excel file. Please upload a standard .xlsx or .xls file."
        ) from e

    non_empty = {
        name: df.dropna(how="all")
        for name, df in sheets.items()
        if not df.dropna(how="all").empty
    }
    if not non_empty:
        raise MaterializationError("Workbook has no sheets with data")

    chosen = next(iter(non_empty))
    if sheet_name and sheet_name.strip():
        requested = sheet_name.strip()
        if requested not in non_empty:
            raise MaterializationError(f'Sheet "{requested}" was not found or is empty.')
        chosen = requested

    buffer = io.StringIO()
    non_empty[chosen].to_csv(buffer, index=False, header=False, lineterminator="\n")
    return SpreadsheetCsv(
        data=buffer.getvalue().encode("utf-8"),
        delimiter=",",
        source_sheet=str(chosen),
        available_sheets=[str(name) for name in non_empty],
    )


def spreadsheet_to_csv(data: bytes, filename: str, sheet_name: Optional[str] = None) -> SpreadsheetCsv:
    """Normalize an upload to CSV bytes.

    CSV passes through with its delimiter detected; workbooks are converted
    from the requested sheet, or the first sheet holding data.

    Raises:
        MaterializationError: Unsupported extension, unreadable workbook, or
            missing sheet.
    """
    extension = Path(filename).suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise MaterializationError("Only .csv, .xlsx, and .xls files are supported")
    if extension == ".csv":
        return SpreadsheetCsv(data=data, delimiter=detect_delimiter(data))
    return _excel_to_csv(data, sheet_name)


def inspect_csv(data: bytes, delimiter: str) -> dict[str, Any]:
    """Row/column counts and trimmed header names for upload metadata."""
    try:
        rows = _read_rows(_decode(data), delimiter)
    except csv.Error:
        return {"row_count": 0, "column_count": 0, "headers": []}
    if not rows:
        return {"row_count": 0, "column_count": 0, "headers": []}
    headers = [h.strip() for h in rows[0] if h.strip()][:MAX_HEADERS_RECORDED]
    return {"row_count": len(rows) - 1, "column_count": len(rows[0]), "headers": headers}


def pick_storage_mode(byte_length: int, config: Optional[Config] = None) -> str:
    """Inline small payloads; larger ones go to the object store when configured."""
    config = config or get_config()
    if byte_length <= config.csv.inline_max_bytes:
        return STORAGE_INLINE
    if config.object_store.is_configured():
        return STORAGE_OBJECT_STORE
    return STORAGE_FILESYSTEM


def _safe_base_name(base_name: str) -> str:
    return _UNSAFE_FILE_CHARS.sub("_", base_name) or "spreadsheet"


def build_csv_upload(
    data: bytes,
    filename: str,
    sheet_name: Optional[str] = None,
    owner_id: Optional[str] = None,
    config: Optional[Config] = None,
) -> dict[str, Any]:
    """Convert an upload and store it; returns metadata for a ``csv`` DataSource.

    Raises:
        MaterializationError: If the file is too large or cannot be converted.
    """
    config = config or get_config()
    if len(data) > config.csv.max_upload_bytes:
        limit_mb = config.csv.max_upload_bytes // (1024 * 1024)
        raise MaterializationError(f"File too large (max {limit_mb}MB)")

    converted = spreadsheet_to_csv(data, filename, sheet_name)
    base_name = Path(filename).stem
    table_name = sanitize_table_name(converted.source_sheet or base_name)
    storage = pick_storage_mode(len(converted.data), config)

    metadata: dict[str, Any] = {
        "storage": storage,
        "byte_length": len(converted.data),
        "table_name": table_name,
        "delimiter": converted.delimiter,
        **inspect_csv(converted.data, converted.delimiter),
        "source_file_name": filename,
        "source_format": Path(filename).suffix.lower().lstrip("."),
    }
    if converted.source_sheet:
        metadata["source_sheet"] = converted.source_sheet
    if converted.available_sheets:
        metadata["available_sheets"] = converted.available_sheets

    prefix = f"{owner_id}_" if owner_id else ""
    stored_name = f"{prefix}{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}_{_safe_base_name(base_name)}.csv"

    if storage == STORAGE_INLINE:
        metadata["csv_base64"] = base64.b64encode(converted.data).decode("ascii")
    elif storage == STORAGE_OBJECT_STORE:
        metadata["file_path"] = upload_to_object_store(f"csv/{stored_name}", converted.data, config)
    else:
        root = upload_root(config)
        root.mkdir(parents=True, exist_ok=True)
        target = root / stored_name
        target.write_bytes(converted.data)
        metadata["file_path"] = str(target)

    logger.info(f"Stored upload {filename} as table {table_name} ({storage}, {len(converted.data)} bytes)")
    return metadata
