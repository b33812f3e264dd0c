"""
Unit tests for configuration models and YAML loading.
"""

import pytest
from pydantic import ValidationError

from bucket_migration.config import (
    MIN_BUFFER_SIZE_MB,
    ConnectionProfile,
    ErrorPolicy,
    MigrationConfig,
    StateConfig,
    TransferConfig,
    default_state_dir,
    load_config_from_yaml,
)


class TestTransferConfig:
    def test_defaults(self):
        config = TransferConfig()

        assert config.max_concurrent_transfers == 2
        assert config.buffer_bytes == 256 * 1024 * 1024
        assert config.error_policy is ErrorPolicy.STOP_ON_FIRST_ERROR
        assert config.bandwidth_bytes_per_second is None
        assert config.max_samples == 300

    def test_buffer_has_minimum(self):
        assert TransferConfig(buffer_size_mb=4).buffer_bytes == MIN_BUFFER_SIZE_MB * 1024 * 1024

    @pytest.mark.parametrize("value", [0, 9])
    def test_concurrency_bounds(self, value):
        with pytest.raises(ValidationError):
            TransferConfig(max_concurrent_transfers=value)

    def test_bandwidth_in_bytes(self):
        assert TransferConfig(bandwidth_limit_mbps=2).bandwidth_bytes_per_second == 2 * 1024 * 1024


class TestMigrationConfig:
    def test_duplicate_profile_names_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate profile name"):
            MigrationConfig(
                profiles=[
                    ConnectionProfile(name="aws", endpoint="s3.amazonaws.com"),
                    ConnectionProfile(name="aws", endpoint="minio.local"),
                ]
            )

    def test_profile_fields_are_stripped(self):
        profile = ConnectionProfile(name="  aws ", endpoint=" s3.amazonaws.com ")

        assert profile.name == "aws"
        assert profile.endpoint == "s3.amazonaws.com"

    def test_empty_endpoint_rejected(self):
        with pytest.raises(ValidationError):
            ConnectionProfile(name="aws", endpoint="  ")

    def test_get_profile(self):
        config = MigrationConfig(profiles=[ConnectionProfile(name="aws", endpoint="s3.amazonaws.com")])

        assert config.get_profile("aws").endpoint == "s3.amazonaws.com"
        assert config.get_profile("missing") is None


class TestStateDir:
    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("BUCKET_BRIDGE_STATE_DIR", str(tmp_path))

        assert default_state_dir() == str(tmp_path)
        assert StateConfig().path == tmp_path

    def test_xdg_state_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv("BUCKET_BRIDGE_STATE_DIR", raising=False)
        monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path))

        assert default_state_dir() == str(tmp_path / "bucket-bridge" / "migration")


class TestLoadConfigFromYaml:
    def test_loads_and_expands_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_SECRET_KEY", "s3cr3t")
        path = tmp_path / "config.yaml"
        path.write_text(
            """
profiles:
  - name: aws
    endpoint: s3.eu-west-1.amazonaws.com
    region: eu-west-1
    access_key: AKIAEXAMPLE
    secret_key: ${TEST_SECRET_KEY}
transfer:
  max_concurrent_transfers: 4
  error_policy: best_effort_continue
state:
  state_dir: /tmp/bucket-bridge-test
"""
        )

        config = load_config_from_yaml(path)

        assert config.profiles[0].secret_key == "s3cr3t"
        assert config.transfer.max_concurrent_transfers == 4
        assert config.transfer.error_policy is ErrorPolicy.BEST_EFFORT_CONTINUE
        assert str(config.state.path) == "/tmp/bucket-bridge-test"

    def test_missing_env_var(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TEST_UNSET_VAR", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("profiles:\n  - name: a\n    endpoint: ${TEST_UNSET_VAR}\n")

        with pytest.raises(ValueError, match="TEST_UNSET_VAR"):
            load_config_from_yaml(path)

    def test_expands_reference_inside_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_AZURE_SAS", "sv=2024-11-04&sig=abc")
        path = tmp_path / "config.yaml"
        path.write_text(
            "profiles:\n"
            "  - name: azure\n"
            '    endpoint: "https://acct.blob.core.windows.net/?${TEST_AZURE_SAS}"\n'
        )

        config = load_config_from_yaml(path)

        assert config.profiles[0].endpoint == "https://acct.blob.core.windows.net/?sv=2024-11-04&sig=abc"

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ValueError, match="mapping"):
            load_config_from_yaml(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_from_yaml(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        with pytest.raises(ValueError, match="Empty configuration"):
            load_config_from_yaml(path)
