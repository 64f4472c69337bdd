# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Where uploaded spreadsheet bytes live, and how they are read back.

Storage modes (``metadata["storage"]``):
- ``inline_base64``: bytes stored in ``metadata["csv_base64"]``
- ``filesystem``: ``metadata["file_path"]`` under the managed upload directory
- ``object_store``: ``metadata["file_path"]`` is ``s3://bucket/key`` or
  ``r2://key`` (key in the configured bucket)
"""

import base64
import binascii
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import urlparse

from datagate.config import Config, get_config
from datagate.errors import ConfigurationError, MaterializationError

logger = logging.getLogger(__name__)

STORAGE_INLINE = "inline_base64"
STORAGE_FILESYSTEM = "filesystem"
STORAGE_OBJECT_STORE = "object_store"

OBJECT_STORE_SCHEMES = ("s3", "r2")

NO_DATA_MESSAGE = "No CSV data found. Please re-upload your spreadsheet."


def is_object_store_path(path: str) -> bool:
    return urlparse(path).scheme in OBJECT_STORE_SCHEMES


def _object_location(path: str, config: Config) -> tuple[str, str]:
    """Split an object-store path into (bucket, key)."""
    parsed = urlparse(path)
    if parsed.scheme == "s3":
        return parsed.netloc, parsed.path.lstrip("/")
    # r2://<key>, bucket from config
    bucket = config.object_store.bucket
    if not bucket:
        raise ConfigurationError("object_store.bucket must be set to read r2:// uploads")
    return bucket, path[len("r2://"):]


def get_object_store_client(config: Optional[Config] = None):
    """Create an S3 client for the configured (S3-compatible) object store."""
    import boto3

    store = (config or get_config()).object_store
    session_kwargs = {}
    if store.region:
        session_kwargs["region_name"] = store.region
    if store.access_key_id and store.secret_access_key:
        session_kwargs["aws_access_key_id"] = store.access_key_id
        session_kwargs["aws_secret_access_key"] = store.secret_access_key

    session = boto3.Session(**session_kwargs)
    return session.client("s3", endpoint_url=store.endpoint_url)


def upload_root(config: Optional[Config] = None) -> Path:
    return Path((config or get_config()).csv.upload_dir).resolve()


def resolve_managed_upload_path(file_path: str, config: Optional[Config] = None) -> Optional[Path]:
    """Resolve a stored path to an absolute file inside the upload directory.

    Returns None for anything that escapes the directory (``..``, absolute
    paths elsewhere, symlinks out) or names the directory itself.
    """
    root = upload_root(config)
    normalized = file_path.replace("\\", "/")
    candidate = Path(normalized)
    if not candidate.is_absolute():
        candidate = Path.cwd() / candidate
    resolved = candidate.resolve()
    if resolved == root or not resolved.is_relative_to(root):
        return None
    return resolved


def load_csv_bytes(metadata: Mapping[str, Any], config: Optional[Config] = None) -> bytes:
    """Read the raw CSV bytes referenced by CSV data source metadata.

    Raises:
        MaterializationError: If nothing is stored or the source cannot be read.
    """
    config = config or get_config()

    inline = metadata.get("csv_base64")
    if inline:
        try:
            return base64.b64decode(inline, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MaterializationError("Stored CSV payload is not valid base64") from e

    file_path = metadata.get("file_path")
    if not file_path:
        raise MaterializationError(NO_DATA_MESSAGE)

    if is_object_store_path(file_path):
        bucket, key = _object_location(file_path, config)
        logger.debug(f"Fetching CSV upload from object store: {bucket}/{key}")
        try:
            obj = get_object_store_client(config).get_object(Bucket=bucket, Key=key)
            return obj["Body"].read()
        except Exception as e:
            raise MaterializationError(f"Could not read {file_path} from object store: {e}") from e

    path = resolve_managed_upload_path(file_path, config)
    if path is None:
        raise MaterializationError(f"CSV path is outside the upload directory: {file_path}")
    try:
        return path.read_bytes()
    except OSError as e:
        raise MaterializationError(f"Could not read {file_path}: {e.strerror or e}") from e


def upload_to_object_store(key: str, data: bytes, config: Optional[Config] = None,
                           content_type: str = "text/csv") -> str:
    """Store bytes under ``key`` in the configured bucket; returns the ``s3://`` path."""
    config = config or get_config()
    bucket = config.object_store.bucket
    if not bucket:
        raise ConfigurationError("object_store.bucket must be set to store uploads")
    get_object_store_client(config).put_object(
        Bucket=bucket, Key=key, Body=data, ContentType=content_type,
    )
    return f"s3://{bucket}/{key}"


@dataclass
class DeleteResult:
    deleted: bool
    reason: Optional[str] = None


def delete_managed_upload(file_path: str, config: Optional[Config] = None) -> DeleteResult:
    """Best-effort removal of a replaced upload. Never raises."""
    config = config or get_config()

    if is_object_store_path(file_path):
        try:
            bucket, key = _object_location(file_path, config)
            get_object_store_client(config).delete_object(Bucket=bucket, Key=key)
            return DeleteResult(deleted=True)
        except Exception as e:
            logger.debug(f"Could not delete {file_path} from object store: {e}")
            return DeleteResult(deleted=False, reason="object_store_delete_failed")

    path = resolve_managed_upload_path(file_path, config)
    if path is None:
        return DeleteResult(deleted=False, reason="unsafe_path")
    if not path.exists():
        return DeleteResult(deleted=False, reason="not_found")
    try:
        path.unlink()
    except OSError as e:
        logger.debug(f"Could not delete {path}: {e}")
        return DeleteResult(deleted=False, reason="delete_failed")
    return DeleteResult(deleted=True)


@dataclass
class CleanupResult:
    scanned: int = 0
    deleted: int = 0


def cleanup_stale_uploads(
    referenced_paths: Iterable[str],
    retention_days: Optional[float] = None,
    config: Optional[Config] = None,
    now: Optional[float] = None,
) -> CleanupResult:
    """Delete unreferenced upload files older than ``retention_days``.

    Only regular files directly inside the upload directory are considered.
    A non-positive retention disables cleanup.
    """
    config = config or get_config()
    if retention_days is None:
        retention_days = config.csv.retention_days
    if retention_days <= 0:
        return CleanupResult()

    root = upload_root(config)
    if not root.is_dir():
        return CleanupResult()

    keep = set()
    for p in referenced_paths:
        resolved = resolve_managed_upload_path(p, config)
        if resolved is not None:
            keep.add(str(resolved).lower())

    cutoff = (now if now is not None else time.time()) - retention_days * 86400
    result = CleanupResult()
    for entry in root.iterdir():
        try:
            stats = entry.stat()
        except OSError:
            continue
        if not entry.is_file():
            continue
        result.scanned += 1
        if str(entry.resolve()).lower() in keep or stats.st_mtime >= cutoff:
            continue
        try:
            entry.unlink()
            result.deleted += 1
        except OSError as e:
            logger.debug(f"Could not delete stale upload {entry}: {e}")

    if result.deleted:
        logger.info(f"Removed {result.deleted} stale upload(s) from {root}")
    return result
