# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Base classes for data source connectors."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union

from datagate.catalog.schema_cache import SchemaCache, get_schema_cache
from datagate.models import ConnectionTestResult, DataSource, QueryResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10_000

TIMEOUT_PATTERN = re.compile(
    r"statement timeout|canceling statement|max_execution_time|timed? ?out|interrupted",
    re.IGNORECASE,
)


def is_timeout_error(error: Union[BaseException, str]) -> bool:
    """Check whether an error (or its message) reports a cancelled statement."""
    if isinstance(error, str):
        return bool(TIMEOUT_PATTERN.search(error))
    # SQLAlchemy wraps the driver exception in ``orig``
    orig = getattr(error, "orig", None)
    if orig is not None and TIMEOUT_PATTERN.search(str(orig)):
        return True
    return bool(TIMEOUT_PATTERN.search(str(error)))


def schema_line_table(line: str) -> str:
    """Table portion of a ``table.column type`` line (may be schema-qualified)."""
    qualified = line.strip().split(" ", 1)[0]
    return qualified.rsplit(".", 1)[0]


def filter_schema_lines(ddl: str, allowed_tables: Optional[Iterable[str]]) -> str:
    """Keep only schema lines whose table is in ``allowed_tables`` (case-insensitive).

    ``None`` means no filtering; an empty allowlist yields an empty schema.
    """
    if allowed_tables is None:
        return ddl
    allowed = {t.lower() for t in allowed_tables}
    return "\n".join(
        line for line in ddl.split("\n")
        if line.strip() and schema_line_table(line).lower() in allowed
    )


def intersect_tables(discovered: Iterable[str], candidate_names: Optional[Iterable[str]]) -> list[str]:
    """Filter discovered table names to those named in ``candidate_names``.

    Matching is case-insensitive; the discovered spelling is returned.
    """
    discovered = list(discovered)
    if candidate_names is None:
        return discovered
    allowed = {name.lower() for name in candidate_names}
    return [table for table in discovered if table.lower() in allowed]


@dataclass
class ParamValidation:
    """Result of ConnectorFactory.validate_params()."""
    ok: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        if self.ok:
            return {"ok": True}
        return {"ok": False, "errors": self.errors}


class ConnectorClient(ABC):
    """One live session against a data source.

    Subclasses must implement:
    - test_connection(): Connect and run a trivial statement
    - get_allowed_tables(): Discover queryable tables
    - execute_query(): Run one read-only statement under a timeout
    - disconnect(): Release the connection
    - _load_schema(): Fetch compact schema text from the store

    A client holds a single connection and is not safe for concurrent use.
    Use it as a context manager to guarantee disconnect:

        with factory.create_client(ds) as client:
            ddl = client.get_schema()
    """

    dialect: str = ""

    def __init__(self, ds: DataSource, cache: Optional[SchemaCache] = None):
        self.ds = ds
        self._cache = cache

    @property
    def cache(self) -> SchemaCache:
        return self._cache if self._cache is not None else get_schema_cache()

    @property
    def default_cache_key(self) -> str:
        return self.ds.cache_key

    @abstractmethod
    def test_connection(self, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> ConnectionTestResult:
        """Connect and run a trivial query. Never raises."""
        pass

    def get_schema(
        self,
        cache_key: Optional[str] = None,
        allowed_tables: Optional[Iterable[str]] = None,
    ) -> str:
        """Return ``table.column type`` lines, cached, filtered to ``allowed_tables``."""
        key = cache_key or self.default_cache_key
        ddl = self.cache.get(key)
        if ddl is None:
            logger.debug(f"Schema cache miss: {key}")
            ddl = self._load_schema()
            self.cache.set(key, ddl)
        else:
            logger.debug(f"Schema cache hit: {key}")
        return filter_schema_lines(ddl, allowed_tables)

    @abstractmethod
    def _load_schema(self) -> str:
        pass

    @abstractmethod
    def get_allowed_tables(self, candidate_names: Optional[Iterable[str]] = None) -> list[str]:
        """List discoverable tables, intersected with ``candidate_names`` when given."""
        pass

    @abstractmethod
    def execute_query(
        self,
        sql: str,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        limit_rows: Optional[int] = None,
    ) -> QueryResult:
        """Execute one statement and return its rows.

        Raises:
            QueryTimeoutError: If the statement exceeded ``timeout_ms``.
            DataSourceConnectionError: If the store cannot be reached.
            QueryExecutionError: For any other execution failure.
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection. Idempotent, never raises."""
        pass

    def __enter__(self) -> "ConnectorClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()


class ConnectorFactory(ABC):
    """Creates clients for one data source type.

    ``type`` matches ``DataSource.type``; ``dialect`` selects the SQL
    dialect used by the guardrails and prompt builders.
    """

    type: str = ""
    display_name: str = ""
    dialect: str = ""

    @abstractmethod
    def create_client(self, ds: DataSource, cache: Optional[SchemaCache] = None) -> ConnectorClient:
        pass

    @abstractmethod
    def validate_params(self, params: Mapping[str, Any]) -> ParamValidation:
        """Check connection parameters before a data source is saved."""
        pass

    def to_dict(self) -> dict:
        return {"type": self.type, "display_name": self.display_name, "dialect": self.dialect}


def validate_network_params(params: Mapping[str, Any]) -> ParamValidation:
    """Host, database and user required, port in 1-65535."""
    errors = []
    if not params.get("host"):
        errors.append("Host is required")
    if not params.get("database"):
        errors.append("Database is required")
    if not params.get("user"):
        errors.append("User is required")
    try:
        port = int(params.get("port") or 0)
    except (TypeError, ValueError):
        port = 0
    if port < 1 or port > 65535:
        errors.append("Port must be 1-65535")
    return ParamValidation(ok=not errors, errors=errors)
