"""
Credentialed boto3 client factory.

An SDK instance pairs a credential provider with a region. Clients are created per
call from the provider's current credentials, so refreshed credentials are picked up
by every new client.
"""

from typing import Any

import boto3
from botocore.client import Config
from pydantic import BaseModel, ConfigDict

from stackdeploy_lib.auth.credentials import CredentialProvider

USER_AGENT_EXTRA = "stackdeploy-lib"


class AccountInfo(BaseModel):
    """Account and partition a set of credentials belongs to."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    partition: str


class SDK:
    """
    boto3 clients for one set of credentials and one region.

    Example:
    -------
        ```python
        sdk = SDK(credentials, "eu-west-1")
        cfn = sdk.cloudformation()
        cfn.describe_stacks(StackName="my-stack")
        ```

    """

    def __init__(
        self,
        credentials: CredentialProvider | None,
        region: str,
        verify_ssl: bool = True,
    ) -> None:
        """
        Initialize the SDK.

        Args:
        ----
            credentials: Credential provider; None uses boto3's own default chain
            region: AWS region for every client
            verify_ssl: Verify SSL certificates

        """
        self._credentials = credentials
        self._region = region
        self._verify_ssl = verify_ssl
        self._config = Config(user_agent_extra=USER_AGENT_EXTRA, retries={"mode": "standard"})

    @property
    def region(self) -> str:
        return self._region

    @property
    def credentials(self) -> CredentialProvider | None:
        return self._credentials

    def client(self, service: str) -> Any:
        """Create a boto3 client for a service with the current credentials."""
        kwargs: dict[str, Any] = {}
        if self._credentials is not None:
            kwargs.update(self._credentials().to_client_kwargs())
        return boto3.client(
            service,
            region_name=self._region,
            config=self._config,
            verify=self._verify_ssl,
            **kwargs,
        )

    def cloudformation(self) -> Any:
        return self.client("cloudformation")

    def s3(self) -> Any:
        return self.client("s3")

    def ecr(self) -> Any:
        return self.client("ecr")

    def sts(self) -> Any:
        return self.client("sts")

    def current_account(self) -> AccountInfo:
        """Ask STS which account and partition these credentials belong to."""
        identity = self.sts().get_caller_identity()
        partition = identity["Arn"].split(":")[1]
        return AccountInfo(account_id=identity["Account"], partition=partition)

    def validate_credentials(self) -> None:
        """
        Invoke the credential provider once.

        Surfaces missing or expired credentials now, rather than deep inside a long
        provisioning call.
        """
        if self._credentials is not None:
            self._credentials()

    def __repr__(self) -> str:
        return f"SDK(region={self._region})"
