# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Shared fixtures: vault key, isolated config and schema cache, sample data."""

import base64
import sqlite3
from pathlib import Path
from typing import Callable, Generator

import pytest

from datagate.catalog.schema_cache import reset_schema_cache
from datagate.config import set_config
from datagate.models import DataSource
from datagate.security.vault import clear_cached_key

TEST_SECRET_HEX = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


# =============================================================================
# Process-wide state isolation
# =============================================================================

@pytest.fixture(autouse=True)
def vault_secret(monkeypatch) -> Generator[str, None, None]:
    """Install a known vault secret and forget any cached key around each test."""
    monkeypatch.setenv("DATASOURCE_SECRET_KEY", TEST_SECRET_HEX)
    clear_cached_key()
    yield TEST_SECRET_HEX
    clear_cached_key()


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch) -> Generator[None, None, None]:
    """Reset config and the shared schema cache; drop fallback URLs from the env."""
    monkeypatch.delenv("DEFAULT_DATASOURCE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    set_config(None)
    reset_schema_cache()
    yield
    set_config(None)
    reset_schema_cache()


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Sample data sources
# =============================================================================

SALES_CSV = "order_id,amount\n1,199.95\n2,10.50"


@pytest.fixture
def make_csv_datasource() -> Callable[..., DataSource]:
    """Build an inline CSV data source from text."""

    def _make(content: str = SALES_CSV, table_name: str = "sales_data", **metadata) -> DataSource:
        meta = {
            "storage": "inline_base64",
            "csv_base64": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "table_name": table_name,
        }
        meta.update(metadata)
        return DataSource(id=f"csv-{table_name}", name="Sales", type="csv", metadata=meta, scope=[table_name])

    return _make


@pytest.fixture
def sqlite_path(tmp_path) -> Path:
    """A SQLite file with ``orders`` and ``customers`` tables."""
    path = tmp_path / "shop.db"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE orders (id INTEGER PRIMARY KEY, customer_id INTEGER, total REAL, placed_at TIMESTAMP);
        CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT);
        INSERT INTO customers VALUES (1, 'Ada'), (2, 'Grace');
        INSERT INTO orders VALUES
            (1, 1, 120.5, '2026-01-02 10:00:00'),
            (2, 1, 30.0, '2026-01-03 11:30:00'),
            (3, 2, 75.25, '2026-01-04 09:15:00');
        """
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def sqlite_datasource(sqlite_path) -> DataSource:
    return DataSource(
        id="shop",
        name="Shop",
        type="sqlite",
        database=str(sqlite_path),
        scope=["orders", "customers"],
    )
