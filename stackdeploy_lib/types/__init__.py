"""Type definitions shared across stackdeploy-lib."""

from stackdeploy_lib.types.artifacts import AssetEntry, AssetKind, AssetPackaging, StackArtifact
from stackdeploy_lib.types.environments import (
    UNKNOWN_ACCOUNT,
    UNKNOWN_REGION,
    Environment,
    format_environment,
)
from stackdeploy_lib.types.modes import (
    AssetBuildTime,
    HotswapMode,
    Mode,
    RequireApproval,
    StackActivityProgress,
)

__all__ = [
    "AssetBuildTime",
    "AssetEntry",
    "AssetKind",
    "AssetPackaging",
    "Environment",
    "HotswapMode",
    "Mode",
    "RequireApproval",
    "StackActivityProgress",
    "StackArtifact",
    "UNKNOWN_ACCOUNT",
    "UNKNOWN_REGION",
    "format_environment",
]
