from typing import Any, Mapping

from adoption.exceptions import MissingOutputError
from common import constants

# Output name -> upstream value name
OUTPUT_SOURCES = {
    "VpcId": "vpc_id",
    "PublicSubnet1Id": "public_subnet1_id",
    "PublicSubnet2Id": "public_subnet2_id",
    "SshSecurityGroupId": "ssh_security_group_id",
    "Ec2SecurityGroupId": "ec2_security_group_id",
    "Ec2RoleName": "ec2_role_name",
    "InstanceProfileName": "instance_profile_name",
    "AssetBucketName": "asset_bucket_name",
    "InstanceId": "instance_id",
    "InstancePublicIp": "instance_public_ip",
    "InstancePublicDns": "instance_public_dns",
}


def ssm_command(instance_id: str) -> str:
    return f"aws ssm start-session --target {instance_id}"


def ssh_command(public_dns: str, user: str = constants.SSH_USER) -> str:
    return f"ssh {user}@{public_dns}"


def _require(values: Mapping[str, Any], name: str) -> str:
    value = values.get(name)
    if value is None or value == "":
        raise MissingOutputError(name)
    return str(value)


def build_outputs(values: Mapping[str, Any]) -> dict[str, str]:
    """Format the stack outputs from resolved (or token) upstream values."""
    outputs = {output: _require(values, source) for output, source in OUTPUT_SOURCES.items()}
    outputs["SsmCommand"] = ssm_command(outputs["InstanceId"])
    outputs["SshCommand"] = ssh_command(outputs["InstancePublicDns"])
    return outputs
