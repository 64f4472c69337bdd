# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Configuration loading with Pydantic validation and env var substitution."""

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from datagate.models import DataSource


class VaultConfig(BaseModel):
    """Where the credential vault finds its key material."""
    secret_env: str = "DATASOURCE_SECRET_KEY"
    # Checked in order when a data source carries no usable connection details
    default_url_envs: list[str] = Field(
        default_factory=lambda: ["DEFAULT_DATASOURCE_URL", "DATABASE_URL"]
    )


class QueryConfig(BaseModel):
    """Bounds applied to every guarded query."""
    max_rows: int = 5000
    timeout_ms: int = 10_000
    test_timeout_ms: int = 10_000


class SchemaConfig(BaseModel):
    """Schema introspection settings."""
    cache_ttl_seconds: float = 300.0


class GuardrailsConfig(BaseModel):
    """SQL guardrail settings."""
    # Also parse with sqlglot and allowlist every table in the tree
    strict_parse: bool = False


class CsvConfig(BaseModel):
    """Spreadsheet upload and materialization settings."""
    sample_rows: int = 500
    inline_max_bytes: int = 2 * 1024 * 1024
    max_upload_bytes: int = 10 * 1024 * 1024
    upload_dir: str = "uploads"
    retention_days: int = 30


class ObjectStoreConfig(BaseModel):
    """S3-compatible object storage for large uploads (S3, R2, MinIO)."""
    bucket: Optional[str] = None
    endpoint_url: Optional[str] = None
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None

    def is_configured(self) -> bool:
        """Check if bucket and credentials are all present."""
        return bool(self.bucket and self.access_key_id and self.secret_access_key)


class PostgresConfig(BaseModel):
    """PostgreSQL driver options."""
    ssl: bool = False


class Config(BaseModel):
    """Root configuration model."""
    model_config = {"extra": "ignore", "populate_by_name": True}

    vault: VaultConfig = Field(default_factory=VaultConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    schema_: SchemaConfig = Field(default_factory=SchemaConfig, alias="schema")
    guardrails: GuardrailsConfig = Field(default_factory=GuardrailsConfig)
    csv: CsvConfig = Field(default_factory=CsvConfig)
    object_store: ObjectStoreConfig = Field(default_factory=ObjectStoreConfig)
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    datasources: list[DataSource] = Field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load config from YAML file with env var substitution."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            raw_content = f.read()

        # Substitute environment variables: ${VAR_NAME}
        substituted = _substitute_env_vars(raw_content)

        data = yaml.safe_load(substituted) or {}
        return cls.model_validate(data)

    def get_datasource(self, name_or_id: str) -> Optional[DataSource]:
        """Find a declared data source by id, falling back to name."""
        for ds in self.datasources:
            if ds.id == name_or_id:
                return ds
        for ds in self.datasources:
            if ds.name == name_or_id:
                return ds
        return None


def _substitute_env_vars(content: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""
    pattern = re.compile(r'\$\{([^}]+)\}')

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ValueError(f"Environment variable not set: {var_name}")
        return value

    return pattern.sub(replacer, content)


_config: Optional[Config] = None


def get_config() -> Config:
    """Return the process-wide config, creating defaults on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Optional[Config]) -> None:
    """Install (or with None, reset) the process-wide config."""
    global _config
    _config = config
