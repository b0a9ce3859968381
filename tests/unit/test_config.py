"""
Unit tests for configuration loading.
"""

import pytest

from gardensync.config import SyncConfig
from gardensync.config.config_loader import ENV_OVERRIDES
from gardensync.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from GARDENSYNC_* variables in the calling environment."""
    for name in list(ENV_OVERRIDES) + ["GARDENSYNC_BACKUP_KEY", "GARDENSYNC_ID_TOKEN"]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GARDENSYNC_DATA_DIR", str(tmp_path / "data"))


class TestDefaults:
    """Tests for built-in defaults."""

    def test_defaults(self, tmp_path):
        config = SyncConfig(load_env_file=False)

        assert config.get("storage.db_path") == str(tmp_path / "data" / "garden.db")
        assert config.get("local_store.capacity") == 100
        assert config.get("remote.batch_limit") == 450
        assert config.get_backup_config()["format"] == "zip"
        assert config.get_remote_config()["project_id"] == ""

    def test_get_missing_returns_default(self):
        config = SyncConfig(load_env_file=False)

        assert config.get("nope.nothing", "fallback") == "fallback"
        assert config.get("storage.db_path.deeper", 1) == 1


class TestYamlFile:
    """Tests for YAML config files."""

    def test_file_merges_over_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("remote:\n  project_id: garden-prod\n  timeout_ms: 5000\n", encoding="utf-8")

        config = SyncConfig(path, load_env_file=False)

        assert config.get("remote.project_id") == "garden-prod"
        assert config.get("remote.timeout_ms") == 5000
        assert config.get("remote.max_retries") == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            SyncConfig(tmp_path / "absent.yaml", load_env_file=False)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("remote: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            SyncConfig(path, load_env_file=False)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            SyncConfig(path, load_env_file=False)


class TestEnvOverrides:
    """Tests for GARDENSYNC_* environment overrides."""

    def test_typed_overrides(self, monkeypatch):
        monkeypatch.setenv("GARDENSYNC_PROJECT_ID", "from-env")
        monkeypatch.setenv("GARDENSYNC_QUEUE_CAPACITY", "25")
        monkeypatch.setenv("GARDENSYNC_ENCRYPT", "yes")

        config = SyncConfig(load_env_file=False)

        assert config.get("remote.project_id") == "from-env"
        assert config.get("local_store.capacity") == 25
        assert config.get("backup.encrypt") is True

    def test_env_wins_over_file(self, monkeypatch, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("backup:\n  format: json\n", encoding="utf-8")
        monkeypatch.setenv("GARDENSYNC_BACKUP_FORMAT", "zip")

        assert SyncConfig(path, load_env_file=False).get("backup.format") == "zip"

    def test_bad_integer(self, monkeypatch):
        monkeypatch.setenv("GARDENSYNC_REMOTE_TIMEOUT_MS", "soon")

        with pytest.raises(ConfigError):
            SyncConfig(load_env_file=False)

    def test_secrets_read_from_env(self, monkeypatch):
        monkeypatch.setenv("GARDENSYNC_BACKUP_KEY", "hunter2")
        monkeypatch.setenv("GARDENSYNC_ID_TOKEN", "id-token")

        config = SyncConfig(load_env_file=False)

        assert config.get_backup_key() == b"hunter2"
        assert config.get_remote_token() == "id-token"

    def test_secrets_absent(self):
        config = SyncConfig(load_env_file=False)

        assert config.get_backup_key() is None
        assert config.get_remote_token() is None


class TestValidation:
    """Tests for config validation."""

    @pytest.mark.parametrize("yaml_text", [
        "backup:\n  format: tar\n",
        "local_store:\n  capacity: 0\n",
        "remote:\n  batch_limit: 600\n",
    ])
    def test_rejected(self, tmp_path, yaml_text):
        path = tmp_path / "config.yaml"
        path.write_text(yaml_text, encoding="utf-8")

        with pytest.raises(ConfigError):
            SyncConfig(path, load_env_file=False)

    def test_set_creates_nested_keys(self):
        config = SyncConfig(load_env_file=False)

        config.set("extra.nested.value", 3)

        assert config.get("extra.nested.value") == 3
        assert config.to_dict()["extra"] == {"nested": {"value": 3}}
