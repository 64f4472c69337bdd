# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Schema introspection, caching and connectors."""

from .overview import build_dataset_overview, is_dataset_overview_question
from .schema_cache import SchemaCache, get_schema_cache, reset_schema_cache
from .schema_parser import ParsedColumn, ParsedTable, classify_type, parse_compact_schema

__all__ = [
    "SchemaCache",
    "get_schema_cache",
    "reset_schema_cache",
    "ParsedColumn",
    "ParsedTable",
    "classify_type",
    "parse_compact_schema",
    "build_dataset_overview",
    "is_dataset_overview_question",
]
