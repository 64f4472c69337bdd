# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Decrypt-at-use helpers for DataSource credentials."""

import logging
import os
from typing import Optional
from urllib.parse import quote

from datagate.errors import ConfigurationError, DecryptionError
from datagate.models import DataSource
from datagate.security.vault import EncryptedPayload, decrypt_string, encrypt_string

logger = logging.getLogger(__name__)

DEFAULT_POSTGRES_PORT = 5432


def _require_triple(
    ciphertext: Optional[str], iv: Optional[str], tag: Optional[str], label: str
) -> EncryptedPayload:
    if not ciphertext or not iv or not tag:
        raise DecryptionError(f"Incomplete encrypted payload for {label}")
    return EncryptedPayload(ciphertext=ciphertext, iv=iv, auth_tag=tag)


def decrypt_data_source_password(ds: DataSource) -> Optional[str]:
    """Return the plaintext password, or None when none is stored."""
    if not ds.password_ciphertext:
        return None
    payload = _require_triple(ds.password_ciphertext, ds.password_iv, ds.password_tag, "password")
    return decrypt_string(payload)


def decrypt_data_source_url(ds: DataSource) -> Optional[str]:
    """Return the plaintext full connection URL, or None when none is stored."""
    if not ds.url_ciphertext:
        return None
    payload = _require_triple(ds.url_ciphertext, ds.url_iv, ds.url_tag, "connection URL")
    return decrypt_string(payload)


def _fallback_url() -> Optional[str]:
    from datagate.config import get_config

    for env_name in get_config().vault.default_url_envs:
        value = os.environ.get(env_name)
        if value:
            return value
    return None


def get_data_source_connection_url(ds: DataSource) -> str:
    """Resolve a usable connection URL for a data source.

    Priority:
    1. Decrypted full URL
    2. Assembled from host/port/database/user plus decrypted password
    3. The statically configured default URL

    Raises:
        ConfigurationError: If none of the above is available.
        DecryptionError: If a stored secret cannot be decrypted.
    """
    direct = decrypt_data_source_url(ds)
    if direct:
        return direct

    if not ds.host or not ds.database or not ds.user:
        fallback = _fallback_url()
        if not fallback:
            raise ConfigurationError(
                "Data source is missing connection details and no fallback URL is configured"
            )
        logger.debug(f"Data source {ds.id} has no connection details, using default URL")
        return fallback

    password = decrypt_data_source_password(ds)
    password_segment = f":{quote(password, safe='')}" if password else ""
    port = ds.port or DEFAULT_POSTGRES_PORT
    return f"postgresql://{quote(ds.user, safe='')}{password_segment}@{ds.host}:{port}/{ds.database}"


def encrypt_password(password: str) -> EncryptedPayload:
    return encrypt_string(password)


def redact_data_source_secrets(ds: DataSource) -> dict:
    return ds.redacted()
