# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Credential vault: AES-256-GCM envelope for stored connection secrets.

The key comes from a single process-wide secret (``DATASOURCE_SECRET_KEY`` by
default) and is decoded once. Accepted encodings, checked in order:

- 64 hex characters
- base64 that decodes to exactly 32 bytes
- the raw UTF-8 bytes of the secret

Each payload is stored as three base64 strings so the nonce and tag can be
persisted in separate columns:

    payload = encrypt_string("s3cret")
    decrypt_string(payload) == "s3cret"
"""

import base64
import binascii
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from datagate.errors import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")

# Written once, then read-only. Two threads racing here derive identical bytes.
_cached_key: Optional[bytes] = None


@dataclass(frozen=True)
class EncryptedPayload:
    """Ciphertext, nonce, and authentication tag, all base64."""
    ciphertext: str
    iv: str
    auth_tag: str

    def to_dict(self) -> dict:
        return {"ciphertext": self.ciphertext, "iv": self.iv, "authTag": self.auth_tag}


def _decode_key(raw: str) -> bytes:
    trimmed = raw.strip()
    if _HEX_KEY.match(trimmed):
        return bytes.fromhex(trimmed)
    try:
        decoded = base64.b64decode(trimmed, validate=True)
        if len(decoded) == KEY_LENGTH:
            return decoded
    except (binascii.Error, ValueError):
        pass
    return trimmed.encode("utf-8")


def _secret_env_name() -> str:
    from datagate.config import get_config
    return get_config().vault.secret_env


def get_key() -> bytes:
    """Return the 32-byte vault key, loading it on first use.

    Raises:
        ConfigurationError: If the secret is unset or does not decode to 32 bytes.
    """
    global _cached_key
    if _cached_key is not None:
        return _cached_key

    env_name = _secret_env_name()
    secret = os.environ.get(env_name)
    if not secret:
        raise ConfigurationError(
            f"{env_name} env var must be set to enable data source encryption."
        )
    key = _decode_key(secret)
    if len(key) != KEY_LENGTH:
        raise ConfigurationError(f"{env_name} must decode to exactly 32 bytes (256 bits).")

    _cached_key = key
    return key


def clear_cached_key() -> None:
    """Forget the cached key so the next call re-reads the environment."""
    global _cached_key
    _cached_key = None


def encrypt_string(plaintext: str) -> EncryptedPayload:
    """Encrypt a UTF-8 string under a fresh random nonce."""
    if not isinstance(plaintext, str):
        raise TypeError("encrypt_string expects a string input")
    key = get_key()
    nonce = os.urandom(NONCE_LENGTH)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag; it is stored separately
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return EncryptedPayload(
        ciphertext=base64.b64encode(ciphertext).decode("ascii"),
        iv=base64.b64encode(nonce).decode("ascii"),
        auth_tag=base64.b64encode(tag).decode("ascii"),
    )


def _b64(value: str, label: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"Malformed {label} in encrypted payload") from e


def decrypt_string(payload: Union[EncryptedPayload, Mapping[str, Any]]) -> str:
    """Decrypt a payload produced by ``encrypt_string``.

    Accepts an ``EncryptedPayload`` or a mapping with ``ciphertext``, ``iv``
    and ``auth_tag`` (or ``authTag``).

    Raises:
        DecryptionError: If any part is missing or authentication fails.
    """
    if isinstance(payload, EncryptedPayload):
        ciphertext, iv, tag = payload.ciphertext, payload.iv, payload.auth_tag
    else:
        ciphertext = payload.get("ciphertext")
        iv = payload.get("iv")
        tag = payload.get("auth_tag") or payload.get("authTag")

    # Empty plaintext encrypts to an empty ciphertext
    if ciphertext is None:
        raise DecryptionError("Missing ciphertext for decryption")
    if not iv or not tag:
        raise DecryptionError("Missing IV or authTag for decryption")

    raw_ciphertext = _b64(ciphertext, "ciphertext")
    nonce = _b64(iv, "IV")
    raw_tag = _b64(tag, "authTag")
    if len(nonce) != NONCE_LENGTH or len(raw_tag) != TAG_LENGTH:
        raise DecryptionError("Encrypted payload has an invalid IV or authTag length")

    key = get_key()
    try:
        plaintext = AESGCM(key).decrypt(nonce, raw_ciphertext + raw_tag, None)
    except InvalidTag as e:
        raise DecryptionError("Encrypted payload failed authentication") from e
    return plaintext.decode("utf-8")
