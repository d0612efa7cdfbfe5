"""boto3-backed implementations of the provisioning and asset protocols."""

from stackdeploy_lib.adapters.assets import AwsAssetPublisher
from stackdeploy_lib.adapters.cloudformation import CloudFormationDeployments

__all__ = [
    "AwsAssetPublisher",
    "CloudFormationDeployments",
]
