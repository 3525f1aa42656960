"""Tests for config hierarchy system."""

import os
from pathlib import Path

import pytest

from certindex.core.config import (
    CertIndexConfig,
    _convert_env_value,
    _deep_merge,
    _extract_env_config,
    _find_config_file,
    load_config,
)
from certindex.errors import ConfigError


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Run each test in an empty directory with no CERTINDEX_ variables."""
    for key in list(os.environ):
        if key.startswith("CERTINDEX_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


class TestConvertEnvValue:
    """Tests for environment value type conversion."""

    def test_convert_integer(self):
        assert _convert_env_value("100") == 100
        assert _convert_env_value("-42") == -42

    def test_convert_float(self):
        assert _convert_env_value("2.5", "timeout") == 2.5

    def test_convert_boolean(self):
        for value in ["true", "True", "yes", "on"]:
            assert _convert_env_value(value) is True
        for value in ["false", "FALSE", "no", "off"]:
            assert _convert_env_value(value) is False

    def test_excluded_fields_split_on_commas(self):
        assert _convert_env_value("icon, avatar, ,banner", "excluded_fields") == [
            "icon",
            "avatar",
            "banner",
        ]

    def test_path_and_name_fields_stay_strings(self):
        """Values that look numeric or boolean are kept as-is for these fields."""
        assert _convert_env_value("1234", "db_path") == "1234"
        assert _convert_env_value("on", "collection") == "on"
        assert _convert_env_value("debug", "level") == "debug"

    def test_empty_string(self):
        assert _convert_env_value("") == ""


class TestDeepMerge:
    """Tests for deep dictionary merging."""

    def test_nested_merge(self):
        base = {"a": {"b": 1, "c": 2}, "d": 3}
        _deep_merge(base, {"a": {"b": 10}, "e": 5})
        assert base == {"a": {"b": 10, "c": 2}, "d": 3, "e": 5}

    def test_override_replaces_non_dict(self):
        base = {"a": 1}
        _deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 2}}


class TestExtractEnvConfig:
    """Tests for environment variable extraction."""

    def test_known_sections(self, monkeypatch):
        monkeypatch.setenv("CERTINDEX_STORAGE_DB_PATH", "/var/lib/ids.db")
        monkeypatch.setenv("CERTINDEX_LOGGING_LEVEL", "debug")
        monkeypatch.setenv("CERTINDEX_SEARCH_EXCLUDED_FIELDS", "icon,avatar")

        assert _extract_env_config() == {
            "storage": {"db_path": "/var/lib/ids.db"},
            "logging": {"level": "debug"},
            "search": {"excluded_fields": ["icon", "avatar"]},
        }

    def test_unknown_sections_ignored(self, monkeypatch):
        monkeypatch.setenv("CERTINDEX_NETWORK_PORT", "8080")
        monkeypatch.setenv("CERTINDEX_VERBOSE", "1")
        assert _extract_env_config() == {}

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("IDX_STORAGE_BACKEND", "memory")
        assert _extract_env_config("IDX_") == {"storage": {"backend": "memory"}}


class TestFindConfigFile:
    def test_none_found(self):
        assert _find_config_file() is None

    def test_prefers_certindex_yaml(self, tmp_path):
        (tmp_path / "config.yaml").write_text("{}")
        (tmp_path / "certindex.yaml").write_text("{}")
        assert _find_config_file() == Path("certindex.yaml")


class TestLoadConfig:
    """Tests for the full hierarchy."""

    def test_defaults(self):
        config = load_config()

        assert config.storage.backend == "sqlite"
        assert config.storage.db_path == Path(".certindex/identity.db")
        assert config.storage.collection == "identityRecords"
        assert config.search.excluded_fields == ["profilePhoto", "icon"]
        assert config.logging.level == "WARNING"
        assert config.logging.audit_db is None

    def test_yaml_paths_resolved_relative_to_file(self, tmp_path):
        conf_dir = tmp_path / "conf"
        conf_dir.mkdir()
        path = conf_dir / "idx.yaml"
        path.write_text(
            "storage:\n"
            "  db_path: data/ids.db\n"
            "  collection: certs\n"
            "logging:\n"
            "  level: warn\n"
            "  audit_db: /tmp/audit.db\n"
        )

        config = load_config(path)

        assert config.storage.db_path == conf_dir / "data" / "ids.db"
        assert config.storage.collection == "certs"
        assert config.logging.level == "WARNING"
        assert config.logging.audit_db == Path("/tmp/audit.db")

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        (tmp_path / "certindex.yaml").write_text("storage:\n  backend: sqlite\n  timeout: 1.0\n")
        monkeypatch.setenv("CERTINDEX_STORAGE_BACKEND", "memory")

        config = load_config()

        assert config.storage.backend == "memory"
        assert config.storage.timeout == 1.0

    def test_cli_overrides_env(self, monkeypatch):
        monkeypatch.setenv("CERTINDEX_LOGGING_LEVEL", "INFO")
        config = load_config(cli_overrides={"logging": {"level": "DEBUG"}})
        assert config.logging.level == "DEBUG"

    def test_use_env_false(self, monkeypatch):
        monkeypatch.setenv("CERTINDEX_LOGGING_LEVEL", "INFO")
        assert load_config(use_env=False).logging.level == "WARNING"

    def test_missing_explicit_path(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("storage: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"storage": {"collection": "bad name"}},
            {"storage": {"backend": "mongo"}},
            {"storage": {"timeout": 0}},
            {"logging": {"level": "LOUD"}},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigError):
            load_config(cli_overrides=overrides)


class TestCertIndexConfig:
    def test_frozen(self):
        config = CertIndexConfig()
        with pytest.raises(Exception):
            config.storage = None

    def test_from_dict_with_empty_sections(self):
        config = CertIndexConfig.from_dict({"storage": None, "search": None})
        assert config.storage.backend == "sqlite"
