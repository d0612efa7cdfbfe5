"""Pytest configuration and fixtures for stackdeploy-lib tests."""

from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, NoCredentialsError
from loguru import logger

from stackdeploy_lib.auth.credentials import AwsCredentials, static_provider
from stackdeploy_lib.auth.sdk import AccountInfo
from stackdeploy_lib.types.artifacts import AssetEntry, AssetKind, StackArtifact
from stackdeploy_lib.types.environments import Environment

ACCOUNT = "111111111111"
OTHER_ACCOUNT = "222222222222"
REGION = "eu-west-1"


@pytest.fixture
def client_error() -> Callable[..., ClientError]:
    """Build botocore ClientErrors with a given code."""

    def build(code: str, message: str = "error", operation: str = "Operation") -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": message}}, operation)

    return build


@pytest.fixture
def credentials() -> AwsCredentials:
    """Static, non-expiring credentials."""
    return AwsCredentials(access_key_id="AKIADEFAULT", secret_access_key="default-secret")


@pytest.fixture
def default_credentials(credentials):
    """Ambient credential provider."""
    return static_provider(credentials)


@pytest.fixture
def sdk_factory() -> Callable[..., MagicMock]:
    """
    Build fake SDK factories.

    ``current_account()`` answers with ``account``, or raises ``error``; without
    either it raises NoCredentialsError, as boto3 does without ambient credentials.
    """

    def build(account: str | None = ACCOUNT, error: BaseException | None = None) -> MagicMock:
        factory = MagicMock(name="sdk_factory")
        sdk = factory.return_value
        if error is not None:
            sdk.current_account.side_effect = error
        elif account is None:
            sdk.current_account.side_effect = NoCredentialsError()
        else:
            sdk.current_account.return_value = AccountInfo(account_id=account, partition="aws")
        return factory

    return build


@pytest.fixture
def make_stack() -> Callable[..., StackArtifact]:
    """Build stack artifacts with one resource unless told otherwise."""

    def build(
        stack_id: str,
        dependencies: list[str] | None = None,
        assets: list[AssetEntry] | None = None,
        resources: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> StackArtifact:
        if resources is None:
            resources = {"Queue": {"Type": "AWS::SQS::Queue"}}
        return StackArtifact(
            id=stack_id,
            stack_name=kwargs.pop("stack_name", stack_id),
            environment=kwargs.pop("environment", Environment.make(ACCOUNT, REGION)),
            template={"Resources": resources, **kwargs.pop("template_extra", {})},
            dependencies=dependencies or [],
            assets=assets or [],
            **kwargs,
        )

    return build


@pytest.fixture
def make_file_asset() -> Callable[..., AssetEntry]:
    def build(asset_id: str, source_path: str = "cdk.out/asset", **kwargs: Any) -> AssetEntry:
        return AssetEntry(
            id=asset_id,
            kind=AssetKind.FILE,
            source_path=source_path,
            bucket_name=kwargs.pop("bucket_name", "assets-bucket"),
            object_key=kwargs.pop("object_key", f"{asset_id}.zip"),
            **kwargs,
        )

    return build


@pytest.fixture
def make_image_asset() -> Callable[..., AssetEntry]:
    def build(asset_id: str, source_path: str = "cdk.out/image", **kwargs: Any) -> AssetEntry:
        return AssetEntry(
            id=asset_id,
            kind=AssetKind.CONTAINER_IMAGE,
            source_path=source_path,
            repository_name=kwargs.pop("repository_name", "assets-repo"),
            image_tag=kwargs.pop("image_tag", asset_id),
            **kwargs,
        )

    return build


@pytest.fixture
def log_records() -> Generator[list[tuple[str, str]], None, None]:
    """Capture loguru records as (level, message) tuples."""
    records: list[tuple[str, str]] = []
    handler_id = logger.add(lambda message: records.append((message.record["level"].name, message.record["message"])))
    yield records
    logger.remove(handler_id)
