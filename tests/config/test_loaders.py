"""Tests for configuration loaders."""

import pytest

from stackdeploy_lib.config.loaders import build_parameter_map, load_settings, parameters_for_stack
from stackdeploy_lib.config.schemas import ToolkitSettings
from stackdeploy_lib.exceptions import StackDeployConfigurationError
from stackdeploy_lib.types.modes import RequireApproval


class TestLoadSettings:
    """Tests for load_settings."""

    def test_missing_file_gives_defaults(self, tmp_path):
        """Test that a missing settings file is not an error."""
        assert load_settings(tmp_path / "stackdeploy.yaml") == ToolkitSettings()

    def test_default_path_is_working_directory(self, tmp_path, monkeypatch):
        """Test that ./stackdeploy.yaml is read by default."""
        (tmp_path / "stackdeploy.yaml").write_text("profile: deploy\n")
        monkeypatch.chdir(tmp_path)
        assert load_settings().profile == "deploy"

    def test_valid_file(self, tmp_path):
        """Test loading a complete settings file."""
        path = tmp_path / "stackdeploy.yaml"
        path.write_text(
            "profile: deploy\n"
            "region: eu-west-1\n"
            "fallback_to_base_credentials: false\n"
            "deploy:\n"
            "  concurrency: 3\n"
            "  require_approval: any-change\n"
        )

        settings = load_settings(path)

        assert settings.region == "eu-west-1"
        assert settings.fallback_to_base_credentials is False
        assert settings.deploy.concurrency == 3
        assert settings.deploy.require_approval == RequireApproval.ANY_CHANGE

    def test_empty_file_gives_defaults(self, tmp_path):
        """Test that an empty file is treated as no settings."""
        path = tmp_path / "stackdeploy.yaml"
        path.write_text("")
        assert load_settings(path) == ToolkitSettings()

    def test_invalid_yaml(self, tmp_path):
        """Test that malformed YAML is a configuration error."""
        path = tmp_path / "stackdeploy.yaml"
        path.write_text("deploy: [unclosed\n")
        with pytest.raises(StackDeployConfigurationError, match="Invalid YAML"):
            load_settings(path)

    def test_non_mapping(self, tmp_path):
        """Test that a YAML list is rejected."""
        path = tmp_path / "stackdeploy.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(StackDeployConfigurationError, match="must contain a mapping"):
            load_settings(path)

    def test_schema_error(self, tmp_path):
        """Test that schema violations are configuration errors."""
        path = tmp_path / "stackdeploy.yaml"
        path.write_text("deploy:\n  concurrency: 0\n")
        with pytest.raises(StackDeployConfigurationError, match="Invalid settings file"):
            load_settings(path)


class TestParameterMap:
    """Tests for build_parameter_map and parameters_for_stack."""

    def test_split_scoped_and_unscoped(self):
        """Test that Stack:Param keys go to their own bucket."""
        assert build_parameter_map({"Env": "dev", "Api:Port": "8080"}) == {
            "*": {"Env": "dev"},
            "Api": {"Port": "8080"},
        }

    def test_empty(self):
        """Test that no parameters yields only the shared bucket."""
        assert build_parameter_map(None) == {"*": {}}

    def test_stack_scoped_wins(self):
        """Test that stack-scoped values override unscoped ones."""
        parameter_map = build_parameter_map({"Port": "80", "Api:Port": "8080", "Env": "dev"})
        assert parameters_for_stack(parameter_map, "Api") == {"Port": "8080", "Env": "dev"}
        assert parameters_for_stack(parameter_map, "Web") == {"Port": "80", "Env": "dev"}
