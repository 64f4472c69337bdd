"""Tests for upload storage: path safety, deletion, stale cleanup, object store."""

import os
import time
from unittest.mock import MagicMock, patch

import pytest

from datagate.catalog.file.storage import (
    cleanup_stale_uploads,
    delete_managed_upload,
    get_object_store_client,
    load_csv_bytes,
    resolve_managed_upload_path,
    upload_to_object_store,
)
from datagate.config import Config, CsvConfig, ObjectStoreConfig
from datagate.errors import ConfigurationError


@pytest.fixture
def upload_config(tmp_path, monkeypatch) -> Config:
    """Relative upload dir under a temporary working directory."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "uploads").mkdir()
    return Config(csv=CsvConfig(upload_dir="uploads"))


class TestResolveManagedUploadPath:

    def test_relative_path_inside(self, tmp_path, upload_config):
        resolved = resolve_managed_upload_path("uploads/a.csv", upload_config)
        assert resolved == (tmp_path / "uploads" / "a.csv").resolve()

    def test_backslashes_normalized(self, tmp_path, upload_config):
        resolved = resolve_managed_upload_path("uploads\\a.csv", upload_config)
        assert resolved == (tmp_path / "uploads" / "a.csv").resolve()

    @pytest.mark.parametrize("path", [
        "uploads/../secret.csv",
        "../uploads/a.csv",
        "uploads",
        "uploads/",
        "/etc/passwd",
    ])
    def test_escapes_rejected(self, path, upload_config):
        assert resolve_managed_upload_path(path, upload_config) is None

    def test_symlink_out_rejected(self, tmp_path, upload_config):
        target = tmp_path / "outside.csv"
        target.write_text("a\n1\n")
        (tmp_path / "uploads" / "link.csv").symlink_to(target)
        assert resolve_managed_upload_path("uploads/link.csv", upload_config) is None


class TestDeleteManagedUpload:

    def test_deletes_file(self, tmp_path, upload_config):
        path = tmp_path / "uploads" / "old.csv"
        path.write_text("a\n1\n")
        result = delete_managed_upload(str(path), upload_config)
        assert result.deleted is True
        assert not path.exists()

    def test_missing_file(self, upload_config):
        result = delete_managed_upload("uploads/none.csv", upload_config)
        assert (result.deleted, result.reason) == (False, "not_found")

    def test_unsafe_path(self, upload_config):
        result = delete_managed_upload("../../etc/hosts", upload_config)
        assert (result.deleted, result.reason) == (False, "unsafe_path")

    def test_object_store(self):
        s3 = MagicMock()
        with patch("datagate.catalog.file.storage.get_object_store_client", return_value=s3):
            result = delete_managed_upload("s3://bucket/csv/a.csv", Config())
        assert result.deleted is True
        s3.delete_object.assert_called_once_with(Bucket="bucket", Key="csv/a.csv")

    def test_object_store_failure(self):
        s3 = MagicMock()
        s3.delete_object.side_effect = RuntimeError("AccessDenied")
        with patch("datagate.catalog.file.storage.get_object_store_client", return_value=s3):
            result = delete_managed_upload("s3://bucket/csv/a.csv", Config())
        assert (result.deleted, result.reason) == (False, "object_store_delete_failed")

    def test_r2_without_bucket(self):
        result = delete_managed_upload("r2://csv/a.csv", Config())
        assert result.reason == "object_store_delete_failed"


class TestCleanupStaleUploads:

    def _age(self, path, days: float) -> None:
        past = time.time() - days * 86400
        os.utime(path, (past, past))

    def test_removes_only_old_unreferenced_files(self, tmp_path, upload_config):
        uploads = tmp_path / "uploads"
        stale = uploads / "stale.csv"
        fresh = uploads / "fresh.csv"
        referenced = uploads / "referenced.csv"
        for p in (stale, fresh, referenced):
            p.write_text("a\n1\n")
        self._age(stale, 40)
        self._age(referenced, 40)
        (uploads / "nested").mkdir()

        result = cleanup_stale_uploads(["uploads/referenced.csv"], config=upload_config)

        assert (result.scanned, result.deleted) == (3, 1)
        assert not stale.exists()
        assert fresh.exists()
        assert referenced.exists()

    def test_retention_override(self, tmp_path, upload_config):
        path = tmp_path / "uploads" / "a.csv"
        path.write_text("a\n1\n")
        self._age(path, 2)
        assert cleanup_stale_uploads([], retention_days=1, config=upload_config).deleted == 1

    def test_disabled_by_non_positive_retention(self, tmp_path, upload_config):
        path = tmp_path / "uploads" / "a.csv"
        path.write_text("a\n1\n")
        self._age(path, 400)
        result = cleanup_stale_uploads([], retention_days=0, config=upload_config)
        assert (result.scanned, result.deleted) == (0, 0)
        assert path.exists()

    def test_missing_directory(self, tmp_path):
        config = Config(csv=CsvConfig(upload_dir=str(tmp_path / "never-created")))
        assert cleanup_stale_uploads([], config=config).scanned == 0


class TestObjectStore:

    def test_client_from_config(self):
        config = Config(object_store=ObjectStoreConfig(
            bucket="b",
            endpoint_url="https://acct.r2.cloudflarestorage.com",
            region="auto",
            access_key_id="AKIA",
            secret_access_key="shh",
        ))
        with patch("boto3.Session") as session_cls:
            client = get_object_store_client(config)

        session_cls.assert_called_once_with(
            region_name="auto", aws_access_key_id="AKIA", aws_secret_access_key="shh",
        )
        session_cls.return_value.client.assert_called_once_with(
            "s3", endpoint_url="https://acct.r2.cloudflarestorage.com",
        )
        assert client is session_cls.return_value.client.return_value

    def test_upload_requires_bucket(self):
        with pytest.raises(ConfigurationError, match="object_store.bucket"):
            upload_to_object_store("csv/a.csv", b"a", Config())

    def test_load_prefers_inline_payload(self):
        assert load_csv_bytes({"csv_base64": "YQ==", "file_path": "s3://b/k"}, Config()) == b"a"
