"""Operating-mode enums shared by the credential and deploy layers."""

from enum import Enum


class Mode(str, Enum):
    """
    Why credentials are being requested.

    Plugins may hand out different (e.g. read-only) credentials for reading, so the
    credential cache keys on both the account and the mode.
    """

    FOR_READING = "for-reading"
    FOR_WRITING = "for-writing"


class RequireApproval(str, Enum):
    """Which template changes need an interactive confirmation before deploying."""

    NEVER = "never"
    ANY_CHANGE = "any-change"
    BROADENING = "broadening"


class HotswapMode(str, Enum):
    """How much of the regular provisioning protocol a deployment may bypass."""

    FALL_BACK = "fall-back"
    HOTSWAP_ONLY = "hotswap-only"
    FULL_DEPLOYMENT = "full-deployment"


class AssetBuildTime(str, Enum):
    """
    When to build assets.

    ALL_BEFORE_DEPLOY builds every asset without waiting for upstream stacks, so a
    failing (Docker) build stops the run before any stack is touched. JUST_IN_TIME
    builds an asset only once the stacks its parent depends on are deployed.
    """

    ALL_BEFORE_DEPLOY = "all-before-deploy"
    JUST_IN_TIME = "just-in-time"


class StackActivityProgress(str, Enum):
    """How stack activity is reported while a deployment runs."""

    BAR = "bar"
    EVENTS = "events"
