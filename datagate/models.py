# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Data model shared by connectors, the vault, and the query pipeline."""

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field

# Fields never returned by DataSource.redacted()
SECRET_FIELDS = (
    "password_ciphertext",
    "password_iv",
    "password_tag",
    "url_ciphertext",
    "url_iv",
    "url_tag",
)


class DataSource(BaseModel):
    """A user-owned connection to a database or an uploaded spreadsheet.

    Secrets are stored only as AES-GCM triples. Use ``with_password`` /
    ``with_url`` to attach a new secret; decryption happens at use time in
    ``datagate.security.secrets``.
    """
    model_config = {"extra": "ignore"}

    id: str
    name: str = ""
    type: str = "postgres"  # postgres, mysql, sqlite, csv

    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None  # SQLite: file path or ":memory:"
    user: Optional[str] = None

    password_ciphertext: Optional[str] = None
    password_iv: Optional[str] = None
    password_tag: Optional[str] = None
    url_ciphertext: Optional[str] = None
    url_iv: Optional[str] = None
    url_tag: Optional[str] = None

    # CSV: storage, delimiter, table_name, csv_base64 | file_path, source_sheet
    metadata: dict[str, Any] = Field(default_factory=dict)
    # Monitored tables; queries may only touch these
    scope: list[str] = Field(default_factory=list)

    owner_id: Optional[str] = None
    org_id: Optional[str] = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_ciphertext)

    @property
    def cache_key(self) -> str:
        """Default schema-cache key derived from connection identity."""
        return f"{self.type}:{self.host}:{self.port}:{self.database}:{self.user}"

    def with_password(self, password: Optional[str]) -> "DataSource":
        """Return a copy carrying a freshly encrypted password (None clears it)."""
        from datagate.security.vault import encrypt_string

        if not password:
            return self.model_copy(update={
                "password_ciphertext": None, "password_iv": None, "password_tag": None,
            })
        payload = encrypt_string(password)
        return self.model_copy(update={
            "password_ciphertext": payload.ciphertext,
            "password_iv": payload.iv,
            "password_tag": payload.auth_tag,
        })

    def with_url(self, url: Optional[str]) -> "DataSource":
        """Return a copy carrying a freshly encrypted full connection URL."""
        from datagate.security.vault import encrypt_string

        if not url:
            return self.model_copy(update={"url_ciphertext": None, "url_iv": None, "url_tag": None})
        payload = encrypt_string(url)
        return self.model_copy(update={
            "url_ciphertext": payload.ciphertext,
            "url_iv": payload.iv,
            "url_tag": payload.auth_tag,
        })

    def redacted(self) -> dict:
        """Convert to dict for API responses, without any ciphertext."""
        data = self.model_dump(exclude=set(SECRET_FIELDS))
        data["has_password"] = self.has_password
        return data


@dataclass
class ConnectionTestResult:
    """Outcome of ConnectorClient.test_connection()."""
    ok: bool
    elapsed_ms: int
    error: Optional[str] = None

    def to_dict(self) -> dict:
        result = {"ok": self.ok, "elapsed_ms": self.elapsed_ms}
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class QueryResult:
    """Rows returned by ConnectorClient.execute_query()."""
    fields: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0

    def to_dict(self) -> dict:
        return {"fields": self.fields, "rows": self.rows, "row_count": self.row_count}
