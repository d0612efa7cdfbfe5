"""
Stack and asset artifact models.

A StackArtifact is one unit of deployment: a template, the environment it targets,
the stacks it depends on and the assets (files, container images) its template
references. Artifacts are produced by whatever synthesises the templates and are
read-only to the deploy engine.
"""

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stackdeploy_lib.types.environments import Environment


class AssetKind(str, Enum):
    """Kind of asset a stack references."""

    FILE = "file"
    CONTAINER_IMAGE = "container-image"


class AssetPackaging(str, Enum):
    """How a file asset is packaged before upload."""

    FILE = "file"
    ZIP_DIRECTORY = "zip"


class AssetEntry(BaseModel):
    """
    One asset from a stack's asset manifest.

    File assets are uploaded to ``bucket_name``/``object_key``; container images are
    pushed to ``repository_name``:``image_tag``. The asset id is a content hash, so two
    stacks referencing the same id share a single build and publish.

    Examples
    --------
        File:
            id: 3f2a...
            kind: file
            source_path: cdk.out/asset.3f2a
            packaging: zip
            bucket_name: stackdeploy-assets-123456789012-eu-west-1
            object_key: 3f2a.zip

        Image:
            id: 9c1e...
            kind: container-image
            source_path: cdk.out/asset.9c1e
            repository_name: stackdeploy-images
            image_tag: 9c1e

    """

    model_config = ConfigDict(frozen=True)

    id: Annotated[str, Field(min_length=1, description="Content hash identifying the asset")]
    kind: AssetKind
    source_path: Annotated[str, Field(description="Path of the file, directory or Docker context")]
    packaging: AssetPackaging = AssetPackaging.FILE

    bucket_name: str | None = None
    object_key: str | None = None

    repository_name: str | None = None
    image_tag: str | None = None
    docker_build_args: dict[str, str] = Field(default_factory=dict)
    dockerfile: str | None = None

    region: str | None = Field(default=None, description="Destination region, defaults to the stack's region")
    assume_role_arn: str | None = Field(default=None, description="Role to assume for publishing")

    @model_validator(mode="after")
    def validate_destination(self) -> "AssetEntry":
        """Validate that the destination fields match the asset kind."""
        if self.kind == AssetKind.FILE and not (self.bucket_name and self.object_key):
            raise ValueError(f"File asset '{self.id}' requires bucket_name and object_key")
        if self.kind == AssetKind.CONTAINER_IMAGE and not (self.repository_name and self.image_tag):
            raise ValueError(f"Container image asset '{self.id}' requires repository_name and image_tag")
        return self

    @property
    def display_name(self) -> str:
        """Short human-readable description of the asset."""
        if self.kind == AssetKind.FILE:
            return f"{self.source_path} -> s3://{self.bucket_name}/{self.object_key}"
        return f"{self.source_path} -> {self.repository_name}:{self.image_tag}"


class StackArtifact(BaseModel):
    """A deployable stack: template, target environment, dependencies and assets."""

    model_config = ConfigDict(frozen=True)

    id: Annotated[str, Field(min_length=1, description="Hierarchical id, unique within a run")]
    stack_name: Annotated[str, Field(min_length=1, description="Physical stack name")]
    environment: Environment
    template: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, str] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list, description="Ids of stacks this stack depends on")
    assets: list[AssetEntry] = Field(default_factory=list)

    assume_role_arn: str | None = Field(default=None, description="Deploy role assumed for provisioning calls")
    assume_role_external_id: str | None = None
    cloudformation_execution_role_arn: str | None = None
    notification_arns: list[str] | None = None
    termination_protection: bool = False
    display_name: str = ""

    @model_validator(mode="after")
    def default_display_name(self) -> "StackArtifact":
        """Use the stack id as display name when none is given."""
        if not self.display_name:
            object.__setattr__(self, "display_name", self.id)
        return self

    @property
    def resources(self) -> dict[str, Any]:
        """Resources section of the template."""
        return self.template.get("Resources") or {}

    @property
    def parameter_defaults(self) -> dict[str, Any]:
        """Declared template parameters."""
        return self.template.get("Parameters") or {}
