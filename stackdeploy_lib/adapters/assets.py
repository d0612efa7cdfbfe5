"""
AWS asset publisher.

File assets are uploaded to S3, zipped first when the source is a directory.
Container image assets are built, tagged and pushed with the ``docker`` CLI into
ECR. Credentials come from the SdkProvider for the stack's environment, using the
asset's publishing role when it has one.
"""

import base64
import shutil
import subprocess
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from botocore.exceptions import ClientError
from loguru import logger

from stackdeploy_lib.auth.sdk_provider import SdkProvider
from stackdeploy_lib.config.schemas import CredentialsOptions
from stackdeploy_lib.exceptions import StackDeployToolkitError, error_code
from stackdeploy_lib.types.artifacts import AssetEntry, AssetKind, AssetPackaging, StackArtifact
from stackdeploy_lib.types.environments import Environment
from stackdeploy_lib.types.modes import Mode
from stackdeploy_lib.utils.commands import run_command

LOGGER = logger.bind(name="stackdeploy_lib.adapters.assets")

MISSING_OBJECT_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
MISSING_IMAGE_CODES = frozenset({"ImageNotFoundException", "RepositoryNotFoundException"})
LOCAL_IMAGE_PREFIX = "stackdeploy-asset"


def local_image_tag(asset: AssetEntry) -> str:
    return f"{LOCAL_IMAGE_PREFIX}:{asset.id}"


class AwsAssetPublisher:
    """
    Build and publish file and container image assets.

    Builds are remembered per asset id, so a publish whose build ran earlier in the
    same process reuses the packaged artifact.
    """

    def __init__(
        self,
        sdk_provider: SdkProvider,
        runner: Callable[..., subprocess.CompletedProcess] = run_command,
        work_dir: str | None = None,
    ) -> None:
        """
        Initialize the publisher.

        Args:
        ----
            sdk_provider: Source of credentialed S3 and ECR clients
            runner: Runs docker commands; ``run_command`` signature
            work_dir: Directory for packaged file assets; a temporary one by default

        """
        self._sdk_provider = sdk_provider
        self._runner = runner
        self._work_dir = Path(work_dir) if work_dir else None
        self._packaged: dict[str, Path] = {}
        self._built_images: set[str] = set()
        self._lock = threading.Lock()

    def _sdk(self, asset: AssetEntry, stack: StackArtifact, mode: Mode) -> Any:
        environment = stack.environment
        if asset.region:
            environment = Environment.make(environment.account, asset.region)
        options = CredentialsOptions(assume_role_arn=asset.assume_role_arn or stack.assume_role_arn)
        return self._sdk_provider.for_environment(environment, mode, options).sdk

    def _staging_dir(self) -> Path:
        with self._lock:
            if self._work_dir is None:
                self._work_dir = Path(tempfile.mkdtemp(prefix="stackdeploy-assets-"))
            self._work_dir.mkdir(parents=True, exist_ok=True)
            return self._work_dir

    def _docker(self, args: list[str], input_text: str | None = None) -> None:
        try:
            self._runner(["docker", *args], input_text=input_text)
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise StackDeployToolkitError(f"docker {args[0]} failed: {stderr or e}") from e
        except FileNotFoundError as e:
            raise StackDeployToolkitError("Unable to run docker: is it installed and on the PATH?") from e

    def build_single_asset(self, asset: AssetEntry, stack: StackArtifact) -> None:
        """
        Package a file asset or build a container image.

        Raises
        ------
            StackDeployToolkitError: If the source is missing or docker fails

        """
        if asset.kind == AssetKind.FILE:
            self._package_file(asset)
        else:
            self._build_image(asset)

    def _package_file(self, asset: AssetEntry) -> Path:
        with self._lock:
            if asset.id in self._packaged:
                return self._packaged[asset.id]

        source = Path(asset.source_path)
        if not source.exists():
            raise StackDeployToolkitError(f"Asset source not found: {source}")

        if asset.packaging == AssetPackaging.ZIP_DIRECTORY or source.is_dir():
            LOGGER.debug(f"Zipping {source} for asset {asset.id}")
            archive = shutil.make_archive(str(self._staging_dir() / asset.id), "zip", root_dir=source)
            packaged = Path(archive)
        else:
            packaged = source

        with self._lock:
            self._packaged[asset.id] = packaged
        return packaged

    def _build_image(self, asset: AssetEntry) -> None:
        with self._lock:
            if asset.id in self._built_images:
                return

        args = ["build", "--tag", local_image_tag(asset)]
        for name, value in sorted(asset.docker_build_args.items()):
            args.extend(["--build-arg", f"{name}={value}"])
        if asset.dockerfile:
            args.extend(["--file", str(Path(asset.source_path) / asset.dockerfile)])
        args.append(asset.source_path)

        LOGGER.info(f"Building {asset.display_name}")
        self._docker(args)
        with self._lock:
            self._built_images.add(asset.id)

    def publish_single_asset(self, asset: AssetEntry, stack: StackArtifact) -> None:
        """
        Upload a file asset to S3 or push an image to ECR.

        Builds the asset first when this process has not built it yet.
        """
        sdk = self._sdk(asset, stack, Mode.FOR_WRITING)
        if asset.kind == AssetKind.FILE:
            packaged = self._package_file(asset)
            LOGGER.info(f"Publishing {asset.display_name}")
            sdk.s3().upload_file(str(packaged), asset.bucket_name, asset.object_key)
            return

        self._build_image(asset)
        registry = self._ecr_login(sdk.ecr())
        remote = f"{registry}/{asset.repository_name}:{asset.image_tag}"
        LOGGER.info(f"Publishing {asset.display_name}")
        self._docker(["tag", local_image_tag(asset), remote])
        self._docker(["push", remote])

    def _ecr_login(self, ecr: Any) -> str:
        data = ecr.get_authorization_token()["authorizationData"][0]
        username, password = base64.b64decode(data["authorizationToken"]).decode("utf-8").split(":", 1)
        registry = data["proxyEndpoint"].removeprefix("https://")
        self._docker(["login", "--username", username, "--password-stdin", registry], input_text=password)
        return registry

    def is_single_asset_published(self, asset: AssetEntry, stack: StackArtifact) -> bool:
        sdk = self._sdk(asset, stack, Mode.FOR_READING)
        try:
            if asset.kind == AssetKind.FILE:
                sdk.s3().head_object(Bucket=asset.bucket_name, Key=asset.object_key)
            else:
                sdk.ecr().describe_images(
                    repositoryName=asset.repository_name,
                    imageIds=[{"imageTag": asset.image_tag}],
                )
        except ClientError as e:
            if error_code(e) in MISSING_OBJECT_CODES | MISSING_IMAGE_CODES:
                return False
            raise
        return True
