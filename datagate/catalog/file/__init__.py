# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Spreadsheet uploads: conversion, storage and type inference."""

from .inference import InferredColumn, infer_column_type, normalize_headers, parse_csv_rows
from .spreadsheet import (
    build_csv_upload,
    detect_delimiter,
    pick_storage_mode,
    sanitize_table_name,
    spreadsheet_to_csv,
)
from .storage import (
    cleanup_stale_uploads,
    delete_managed_upload,
    load_csv_bytes,
    resolve_managed_upload_path,
)

__all__ = [
    "InferredColumn",
    "infer_column_type",
    "normalize_headers",
    "parse_csv_rows",
    "build_csv_upload",
    "detect_delimiter",
    "pick_storage_mode",
    "sanitize_table_name",
    "spreadsheet_to_csv",
    "cleanup_stale_uploads",
    "delete_managed_upload",
    "load_csv_bytes",
    "resolve_managed_upload_path",
]
