"""Deployment environment (account + region) type definitions."""

import re

from pydantic import BaseModel, ConfigDict

UNKNOWN_ACCOUNT = "unknown-account"
UNKNOWN_REGION = "unknown-region"

_ENVIRONMENT_URL = re.compile(r"^aws://([^/]+)/([^/]+)$")


class Environment(BaseModel):
    """
    Target account and region of a stack.

    Either field may hold the UNKNOWN_ACCOUNT / UNKNOWN_REGION sentinel until the
    environment is resolved against the ambient credentials and configuration.
    Instances are immutable.
    """

    model_config = ConfigDict(frozen=True)

    account: str
    region: str
    name: str = ""

    @classmethod
    def make(cls, account: str, region: str) -> "Environment":
        """
        Build an environment with its canonical aws://account/region name.

        Example:
        -------
            >>> Environment.make("123456789012", "eu-west-1").name
            'aws://123456789012/eu-west-1'

        """
        return cls(account=account, region=region, name=format_environment(account, region))

    @classmethod
    def parse(cls, url: str) -> "Environment":
        """
        Parse an aws://account/region string.

        Raises
        ------
            ValueError: If the string is not an environment URL

        """
        match = _ENVIRONMENT_URL.match(url.strip())
        if not match:
            raise ValueError(f"Invalid environment: '{url}'. Expected the form aws://<account>/<region>")
        return cls.make(match.group(1), match.group(2))

    @property
    def is_resolved(self) -> bool:
        """True when neither account nor region is a sentinel."""
        return self.account != UNKNOWN_ACCOUNT and self.region != UNKNOWN_REGION


def format_environment(account: str, region: str) -> str:
    """Return the aws://account/region name of an environment."""
    return f"aws://{account}/{region}"
