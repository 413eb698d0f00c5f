"""Tests for configuration loading and policies."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from blob_propagator.config import BackendSettings, PropagatorConfig, load_config, resolve_config_path
from blob_propagator.constants import CONFIG_ENV_VAR
from blob_propagator.errors import ConfigError
from blob_propagator.policy import CleanupPolicy, RetryPolicy
from blob_propagator.storage_models import BlobStorage


def _write_config(path: Path, data) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


class TestBackendSettings:

    @pytest.mark.parametrize("name", ["object-store", "OBJECT_STORE", "Object-Store"])
    def test_storage_names(self, name):
        assert BackendSettings(storage=name).storage == BlobStorage.OBJECT_STORE

    def test_unknown_storage(self):
        with pytest.raises(ValidationError):
            BackendSettings(storage="tape")

    def test_object_store_defaults_to_azure(self):
        assert BackendSettings(storage="object-store").provider == "azure"
        assert BackendSettings(storage="filesystem").provider == ""


class TestPropagatorConfig:

    def test_defaults(self):
        config = PropagatorConfig()
        assert config.backends == []
        assert config.required == []
        assert config.retry == RetryPolicy()
        assert config.cleanup == CleanupPolicy()

    def test_required_defaults_to_all_configured(self, config):
        assert config.required == config.storages

    def test_required_subset(self, tmp_path):
        config = PropagatorConfig(
            backends=[
                BackendSettings(storage="filesystem", path="fs"),
                BackendSettings(storage="relational", path="data.db"),
            ],
            required_backends=["relational"],
        )
        assert config.required == [BlobStorage.RELATIONAL]

    def test_required_must_be_configured(self):
        with pytest.raises(ValidationError, match="not configured"):
            PropagatorConfig(
                backends=[BackendSettings(storage="filesystem", path="fs")],
                required_backends=["swarm"],
            )

    def test_duplicate_backends(self):
        with pytest.raises(ValidationError, match="more than once"):
            PropagatorConfig(backends=[
                BackendSettings(storage="filesystem", path="a"),
                BackendSettings(storage="filesystem", path="b"),
            ])

    def test_backend_lookup(self, config):
        assert config.backend(BlobStorage.SWARM).url == "http://bee.test:1633"
        assert PropagatorConfig().backend(BlobStorage.SWARM) is None


class TestRetryPolicy:

    def test_exponential_backoff_capped(self):
        policy = RetryPolicy(backoff_seconds=1, backoff_factor=2, max_backoff_seconds=5)
        assert [policy.delay_for(n) for n in range(1, 6)] == [1, 2, 4, 5, 5]

    def test_should_retry(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(1)
        assert policy.should_retry(2)
        assert not policy.should_retry(3)

    def test_cap_below_initial_rejected(self):
        with pytest.raises(ValidationError):
            RetryPolicy(backoff_seconds=10, max_backoff_seconds=1)

    def test_attempt_timeout_positive(self):
        with pytest.raises(ValidationError):
            RetryPolicy(attempt_timeout=0)


class TestLoadConfig:

    def test_load_resolves_relative_paths(self, tmp_path):
        cfg = _write_config(tmp_path / "blob-propagator.yaml", {
            "staging_dir": "staging",
            "catalog_path": "state/catalog.db",
            "backends": [
                {"storage": "filesystem", "path": "fs"},
                {"storage": "relational", "path": "/abs/data.db"},
                {"storage": "swarm", "url": "http://bee:1633"},
            ],
            "retry": {"max_attempts": 5},
            "cleanup": {"grace_seconds": 60},
        })

        config = load_config(cfg)

        assert config.staging_dir == tmp_path / "staging"
        assert config.catalog_path == tmp_path / "state" / "catalog.db"
        assert config.backend(BlobStorage.FILESYSTEM).path == str(tmp_path / "fs")
        assert config.backend(BlobStorage.RELATIONAL).path == "/abs/data.db"
        assert config.retry.max_attempts == 5
        assert config.cleanup.grace_seconds == 60

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        cfg = tmp_path / "bad.yaml"
        cfg.write_text("backends: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(cfg)

    def test_not_a_mapping(self, tmp_path):
        cfg = _write_config(tmp_path / "list.yaml", ["a", "b"])
        with pytest.raises(ConfigError, match="mapping"):
            load_config(cfg)

    def test_invalid_values(self, tmp_path):
        cfg = _write_config(tmp_path / "c.yaml", {"backends": [{"storage": "tape"}]})
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(cfg)

    def test_empty_file_uses_defaults(self, tmp_path):
        cfg = tmp_path / "empty.yaml"
        cfg.write_text("")
        assert load_config(cfg).backends == []


class TestResolveConfigPath:

    def test_explicit_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.yaml"))
        assert resolve_config_path(tmp_path / "x.yaml") == tmp_path / "x.yaml"

    def test_env_var(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.yaml"))
        assert resolve_config_path() == tmp_path / "env.yaml"

    def test_cwd_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)
        assert resolve_config_path() == tmp_path / "blob-propagator.yaml"
