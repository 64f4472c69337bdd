# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Exception hierarchy for the data-access layer.

Callers distinguish a timed-out query from a generic failure by type:

    try:
        result = client.execute_query(sql, timeout_ms=10_000)
    except QueryTimeoutError:
        ...  # suggest a narrower query
    except QueryExecutionError:
        ...
"""

from typing import Optional


class DatagateError(Exception):
    """Base class for all errors raised by datagate."""


class ConfigurationError(DatagateError):
    """Missing or invalid process configuration (e.g. the vault secret).

    Fatal: retrying without changing the environment cannot succeed.
    """


class DecryptionError(DatagateError):
    """An encrypted credential payload is incomplete or fails authentication."""


class UnknownConnectorType(DatagateError):
    """No connector factory is registered for a data source type tag."""

    def __init__(self, connector_type: str, available: list[str]):
        self.connector_type = connector_type
        self.available = available
        super().__init__(
            f'Unknown connector type: "{connector_type}". '
            f"Available: {', '.join(available)}"
        )


class DataSourceConnectionError(DatagateError):
    """Network or authentication failure reaching the underlying store."""


class QueryExecutionError(DatagateError):
    """A validated statement failed while executing."""


class QueryTimeoutError(QueryExecutionError):
    """A statement exceeded its deadline and was cancelled by the database."""

    def __init__(self, message: str, timeout_ms: Optional[int] = None):
        self.timeout_ms = timeout_ms
        super().__init__(message)


class GuardrailRejection(DatagateError):
    """Candidate SQL failed validation. ``reason`` is human-readable."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class MaterializationError(DatagateError):
    """An uploaded spreadsheet could not be turned into a queryable table."""
