"""Tests for configuration loading."""

import pytest

from datagate.config import Config, get_config, set_config


class TestConfigDefaults:

    def test_defaults(self):
        config = Config()
        assert config.vault.secret_env == "DATASOURCE_SECRET_KEY"
        assert config.vault.default_url_envs == ["DEFAULT_DATASOURCE_URL", "DATABASE_URL"]
        assert config.query.max_rows == 5000
        assert config.query.timeout_ms == 10_000
        assert config.schema_.cache_ttl_seconds == 300.0
        assert config.guardrails.strict_parse is False
        assert config.csv.sample_rows == 500
        assert config.csv.inline_max_bytes == 2 * 1024 * 1024
        assert config.object_store.is_configured() is False
        assert config.datasources == []

    def test_process_wide_config(self):
        assert get_config() is get_config()
        custom = Config()
        set_config(custom)
        assert get_config() is custom
        set_config(None)
        assert get_config() is not custom


class TestConfigFromYaml:

    def test_full_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WAREHOUSE_HOST", "db.internal")
        path = tmp_path / "config.yaml"
        path.write_text("""
query:
  max_rows: 100
  timeout_ms: 2500
schema:
  cache_ttl_seconds: 60
guardrails:
  strict_parse: true
csv:
  upload_dir: /var/lib/datagate/uploads
object_store:
  bucket: uploads
  access_key_id: key
  secret_access_key: secret
datasources:
  - id: warehouse
    name: Warehouse
    type: postgres
    host: ${WAREHOUSE_HOST}
    port: 5432
    database: analytics
    user: reader
    scope: [public.orders, public.customers]
  - id: shop
    type: sqlite
    database: ./shop.db
""")
        config = Config.from_yaml(path)

        assert config.query.max_rows == 100
        assert config.schema_.cache_ttl_seconds == 60
        assert config.guardrails.strict_parse is True
        assert config.object_store.is_configured() is True
        assert [ds.id for ds in config.datasources] == ["warehouse", "shop"]
        warehouse = config.datasources[0]
        assert warehouse.host == "db.internal"
        assert warehouse.scope == ["public.orders", "public.customers"]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert Config.from_yaml(path).datasources == []

    def test_unknown_sections_ignored(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("llm:\n  provider: anthropic\nquery:\n  max_rows: 7\n")
        assert Config.from_yaml(str(path)).query.max_rows == 7

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            Config.from_yaml(tmp_path / "nope.yaml")

    def test_unset_env_var(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("datasources:\n  - id: x\n    host: ${DATAGATE_UNSET_VAR_FOR_TEST}\n")
        with pytest.raises(ValueError, match="Environment variable not set: DATAGATE_UNSET_VAR_FOR_TEST"):
            Config.from_yaml(path)


class TestGetDatasource:

    def test_by_id_then_name(self):
        config = Config(datasources=[
            {"id": "wh", "name": "shop"},
            {"id": "shop", "name": "Shop DB"},
        ])
        assert config.get_datasource("shop").id == "shop"
        assert config.get_datasource("Shop DB").id == "shop"
        assert config.get_datasource("missing") is None
