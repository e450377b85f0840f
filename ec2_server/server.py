from pathlib import Path

from attrs import define

from adoption import sizing
from adoption.models import (
    AdoptionPlan,
    BootScript,
    LogicalResource,
    MachineImageLookup,
    ResourceKind,
)
from common import constants
from common.config import DeploymentConfig
from common.stack_context import StackContext
from ec2_server.access_control import AccessControl
from networking.topology import Topology

USER_DATA_ROOT = Path(__file__).resolve().parent.parent / constants.USER_DATA_DIR

# Never diffed against the running instance, so a new AMI or boot script
# does not replace it.
INSTANCE_IGNORES = frozenset({"user_data", "image_id"})


@define(slots=True, frozen=True)
class Server:
    bucket: LogicalResource
    instance: LogicalResource


def get_user_data(filename: str = constants.USER_DATA_FILE) -> str:
    with open(USER_DATA_ROOT / filename) as file:
        user_data = file.read()
    return user_data


class ServerBuilder:
    """Declares the asset bucket and the EC2 instance."""

    def __init__(
        self, plan: AdoptionPlan, context: StackContext, config: DeploymentConfig
    ) -> None:
        self.plan = plan
        self.context = context
        self.config = config

    def build(self, topology: Topology, access: AccessControl) -> Server:
        bucket = self.create_asset_bucket()
        return Server(bucket=bucket, instance=self.create_instance(topology, access, bucket))

    def create_asset_bucket(self) -> LogicalResource:
        """Bucket the instance downloads its assets from during boot."""
        return self.plan.add(
            LogicalResource(
                logical_id="assetBucket",
                kind=ResourceKind.BUCKET,
                mapping_key="asset_bucket",
                attributes={
                    "public_access_block": {
                        "BlockPublicAcls": True,
                        "BlockPublicPolicy": True,
                        "IgnorePublicAcls": True,
                        "RestrictPublicBuckets": True,
                    },
                    "object_ownership": "BucketOwnerPreferred",
                    "tags": self.context.build_tags("EC2", "assetBucket"),
                },
            )
        )

    def build_boot_script(self, bucket: LogicalResource) -> BootScript:
        return BootScript(
            template=get_user_data(),
            variables={
                "BucketName": bucket.ref(),
                "StackId": self.context.stack_name,
                "SshPubKey": self.config.ssh_pub_key,
            },
        )

    def create_instance(
        self, topology: Topology, access: AccessControl, bucket: LogicalResource
    ) -> LogicalResource:
        subnet = topology.subnets[0]
        security_groups = access.security_groups
        return self.plan.add(
            LogicalResource(
                logical_id="Instance",
                kind=ResourceKind.INSTANCE,
                mapping_key="ec2_instance",
                depends_on={
                    subnet.logical_id,
                    access.role.logical_id,
                    access.instance_profile.logical_id,
                    bucket.logical_id,
                    *(group.logical_id for group in security_groups),
                },
                ignore_attributes=INSTANCE_IGNORES,
                attributes={
                    "instance_type": sizing.resolve(self.config.cpu_arch, self.config.size_class),
                    "image_id": MachineImageLookup(sizing.ami_architecture(self.config.cpu_arch)),
                    "subnet_id": subnet.ref(),
                    "security_group_ids": tuple(group.ref() for group in security_groups),
                    "iam_instance_profile": access.instance_profile.ref(),
                    "user_data": self.build_boot_script(bucket),
                    "tags": self.context.build_tags("EC2", "Instance"),
                },
            )
        )
