"""
Role assumption on top of base credentials.

The assumed-role credentials are wrapped in a caching provider, so repeated client
creation does not call STS again until the credentials are about to expire. The
provider is invoked once before returning, so a role that cannot be assumed fails
here rather than deep inside a long deployment.
"""

import getpass
import re
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict

from stackdeploy_lib.auth.credentials import AwsCredentials, CachingProvider, CredentialProvider
from stackdeploy_lib.auth.outcomes import CredentialOutcome, describe_credentials_source, usable_credentials
from stackdeploy_lib.auth.resolver import SdkFactory
from stackdeploy_lib.exceptions import StackDeployAuthenticationError, is_expired_token_error

LOGGER = logger.bind(name="stackdeploy_lib.auth.assume_role")

SESSION_NAME_PREFIX = "stackdeploy"
_INVALID_SESSION_CHARS = re.compile(r"[^\w+=,.@-]")


class SdkForEnvironment(BaseModel):
    """An SDK for a target environment and whether a role was assumed to get it."""

    model_config = ConfigDict(frozen=True)

    sdk: Any
    did_assume_role: bool


def safe_username() -> str:
    """Return the OS username with characters invalid for a RoleSessionName replaced."""
    try:
        return _INVALID_SESSION_CHARS.sub("@", getpass.getuser())
    except (KeyError, OSError):
        return "noname"


def assume_role_params(
    role_arn: str,
    external_id: str | None = None,
    additional_options: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build the ``sts.assume_role`` request.

    Tags passed in ``additional_options`` are made transitive.
    """
    params: dict[str, Any] = {
        "RoleArn": role_arn,
        "RoleSessionName": f"{SESSION_NAME_PREFIX}-{safe_username()}",
    }
    if external_id:
        params["ExternalId"] = external_id
    params.update(additional_options or {})

    tags = (additional_options or {}).get("Tags")
    if tags:
        params["TransitiveTagKeys"] = [tag["Key"] for tag in tags]
    return params


class RoleAssumptionEngine:
    """
    Assume a role using base credentials, with a fallback to the base credentials.

    When assumption fails for a reason other than expired credentials, base
    credentials that are known to belong to the target account (ambient credentials
    for that account, or plugin credentials) are used as they are. This keeps
    setups working where the operator only has base permissions, such as a
    read-only session without ``sts:AssumeRole``. ``fallback_to_base_credentials=False``
    turns every assumption failure into a fatal error instead.
    """

    def __init__(self, sdk_factory: SdkFactory, fallback_to_base_credentials: bool = True) -> None:
        self._sdk_factory = sdk_factory
        self._fallback = fallback_to_base_credentials

    def assume_role(
        self,
        base: CredentialOutcome,
        role_arn: str,
        region: str,
        external_id: str | None = None,
        additional_options: dict[str, Any] | None = None,
        quiet: bool = False,
    ) -> SdkForEnvironment:
        """
        Return an SDK using assumed-role credentials.

        Args:
        ----
            base: Base credential outcome for the target account
            role_arn: Role to assume
            region: Region for the STS call and the returned SDK
            external_id: Optional external id
            additional_options: Extra ``assume_role`` parameters (``Tags``, ``DurationSeconds``...)
            quiet: Log the fallback at debug instead of warning level

        Returns:
        -------
            SdkForEnvironment; ``did_assume_role`` is False when the base credentials
            were used as a fallback

        Raises:
        ------
            StackDeployAuthenticationError: If assumption failed and no fallback applies
            Expired-token errors, unchanged

        """
        LOGGER.debug(f"Assuming role '{role_arn}'.")
        try:
            credentials = self._assumed_role_provider(base, role_arn, region, external_id, additional_options)
            credentials()
            return SdkForEnvironment(sdk=self._sdk_factory(credentials, region), did_assume_role=True)
        except Exception as e:
            if is_expired_token_error(e):
                raise
            LOGGER.debug(f"Assuming role failed: {e}")
            source = describe_credentials_source(base)

            fallback = usable_credentials(base) if self._fallback else None
            if fallback is not None:
                log = LOGGER.debug if quiet else LOGGER.warning
                log(f"{source} could not be used to assume '{role_arn}', but are for the right account. Proceeding anyway.")
                return SdkForEnvironment(sdk=self._sdk_factory(fallback, region), did_assume_role=False)

            parts = ["Could not assume role in target account"]
            if source:
                parts.append(f"using {source}")
            parts.append(str(e))
            parts.append(
                ". Please make sure that this role exists in the account. If it doesn't exist, (re)-bootstrap "
                "the environment with the right '--trust', using the latest version of stackdeploy."
            )
            raise StackDeployAuthenticationError(" ".join(parts)) from e

    def _assumed_role_provider(
        self,
        base: CredentialOutcome,
        role_arn: str,
        region: str,
        external_id: str | None,
        additional_options: dict[str, Any] | None,
    ) -> CredentialProvider:
        # NoCredentials has no provider; boto3's own chain is then the caller
        master = self._sdk_factory(getattr(base, "credentials", None), region)
        params = assume_role_params(role_arn, external_id, additional_options)

        def fetch() -> AwsCredentials:
            response = master.sts().assume_role(**params)
            return AwsCredentials.from_mapping(response["Credentials"])

        return CachingProvider(fetch)
