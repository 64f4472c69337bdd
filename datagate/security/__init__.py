# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Credential encryption for stored data source secrets."""

from .vault import (
    EncryptedPayload,
    clear_cached_key,
    decrypt_string,
    encrypt_string,
    get_key,
)
from .secrets import (
    decrypt_data_source_password,
    decrypt_data_source_url,
    encrypt_password,
    get_data_source_connection_url,
    redact_data_source_secrets,
)

__all__ = [
    # Vault
    "EncryptedPayload",
    "clear_cached_key",
    "decrypt_string",
    "encrypt_string",
    "get_key",
    # Data source secrets
    "decrypt_data_source_password",
    "decrypt_data_source_url",
    "encrypt_password",
    "get_data_source_connection_url",
    "redact_data_source_secrets",
]
