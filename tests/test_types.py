"""Tests for type definitions."""

import pytest
from pydantic import ValidationError

from stackdeploy_lib.types import (
    UNKNOWN_ACCOUNT,
    UNKNOWN_REGION,
    AssetEntry,
    AssetKind,
    Environment,
    StackArtifact,
    format_environment,
)


class TestEnvironment:
    """Tests for Environment."""

    def test_make_sets_canonical_name(self):
        """Test that make() names the environment aws://account/region."""
        env = Environment.make("123456789012", "eu-west-1")
        assert env.name == "aws://123456789012/eu-west-1"
        assert format_environment("123456789012", "eu-west-1") == env.name

    def test_parse(self):
        """Test parsing an environment URL."""
        env = Environment.parse("aws://123456789012/us-west-2")
        assert env.account == "123456789012"
        assert env.region == "us-west-2"

    def test_parse_invalid(self):
        """Test that malformed URLs are rejected."""
        with pytest.raises(ValueError, match="Invalid environment"):
            Environment.parse("123456789012/us-west-2")

    def test_is_resolved(self):
        """Test sentinel detection."""
        assert Environment.make("123456789012", "us-west-2").is_resolved
        assert not Environment.make(UNKNOWN_ACCOUNT, "us-west-2").is_resolved
        assert not Environment.make("123456789012", UNKNOWN_REGION).is_resolved

    def test_environment_is_frozen(self):
        """Test that environments are immutable."""
        env = Environment.make("123456789012", "us-west-2")
        with pytest.raises(ValidationError):
            env.account = "999999999999"


class TestAssetEntry:
    """Tests for AssetEntry."""

    def test_file_asset_requires_destination(self):
        """Test that file assets need a bucket and key."""
        with pytest.raises(ValidationError, match="requires bucket_name and object_key"):
            AssetEntry(id="a1", kind=AssetKind.FILE, source_path="asset.a1")

    def test_image_asset_requires_destination(self):
        """Test that image assets need a repository and tag."""
        with pytest.raises(ValidationError, match="requires repository_name and image_tag"):
            AssetEntry(id="i1", kind=AssetKind.CONTAINER_IMAGE, source_path="asset.i1")

    def test_display_name(self, make_file_asset, make_image_asset):
        """Test display names of both asset kinds."""
        assert make_file_asset("a1", source_path="src").display_name == "src -> s3://assets-bucket/a1.zip"
        assert make_image_asset("i1", source_path="ctx").display_name == "ctx -> assets-repo:i1"


class TestStackArtifact:
    """Tests for StackArtifact."""

    def test_display_name_defaults_to_id(self, make_stack):
        """Test that the display name falls back to the stack id."""
        assert make_stack("App/Api").display_name == "App/Api"

    def test_explicit_display_name(self, make_stack):
        """Test that an explicit display name is kept."""
        assert make_stack("App/Api", display_name="Api (prod)").display_name == "Api (prod)"

    def test_resources_and_parameters(self, make_stack):
        """Test the template accessors."""
        stack = make_stack("Api", template_extra={"Parameters": {"Port": {"Type": "Number"}}})
        assert list(stack.resources) == ["Queue"]
        assert stack.parameter_defaults == {"Port": {"Type": "Number"}}

    def test_empty_template(self):
        """Test accessors on a template without sections."""
        stack = StackArtifact(id="Empty", stack_name="Empty", environment=Environment.make("1", "r"))
        assert stack.resources == {}
        assert stack.parameter_defaults == {}
