from attrs import define

from adoption.models import AdoptionPlan, LogicalResource, ResourceKind, SecurityGroupRule
from common import constants
from common.stack_context import StackContext

ALLOW_ALL_EGRESS = SecurityGroupRule(
    protocol=constants.ALL_PROTOCOLS,
    from_port=0,
    to_port=0,
    cidr_ip=constants.ANY_IPV4_CIDR,
    description="Allow all outbound traffic",
)
SSH_INGRESS = SecurityGroupRule(
    protocol="tcp",
    from_port=constants.SSH_PORT,
    to_port=constants.SSH_PORT,
    cidr_ip=constants.ANY_IPV4_CIDR,
    description="Allow SSH inbound traffic on TCP port 22",
)


@define(slots=True, frozen=True)
class AccessControl:
    role: LogicalResource
    instance_profile: LogicalResource
    ssh_security_group: LogicalResource
    instance_security_group: LogicalResource

    @property
    def security_groups(self) -> tuple:
        return (self.instance_security_group, self.ssh_security_group)


def assume_role_policy(service: str = constants.EC2_SERVICE_PRINCIPAL) -> dict:
    return {
        "Version": constants.POLICY_VERSION,
        "Statement": [
            {
                "Action": "sts:AssumeRole",
                "Effect": "Allow",
                "Principal": {"Service": service},
            }
        ],
    }


def retention_policy() -> dict:
    return {
        "PolicyName": constants.RETENTION_POLICY_NAME,
        "PolicyDocument": {
            "Version": constants.POLICY_VERSION,
            "Statement": [
                {
                    "Effect": "Allow",
                    "Action": [constants.RETENTION_POLICY_ACTION],
                    "Resource": ["*"],
                }
            ],
        },
    }


class AccessControlBuilder:
    """Declares the instance role, its profile and the instance security groups."""

    def __init__(self, plan: AdoptionPlan, context: StackContext) -> None:
        self.plan = plan
        self.context = context

    def build(self, vpc: LogicalResource) -> AccessControl:
        role = self.create_role()
        return AccessControl(
            role=role,
            instance_profile=self.create_instance_profile(role),
            ssh_security_group=self.create_ssh_security_group(vpc),
            instance_security_group=self.create_instance_security_group(vpc),
        )

    def create_role(self) -> LogicalResource:
        """Role assumable by EC2 only, with SSM and CloudWatch agent access."""
        return self.plan.add(
            LogicalResource(
                logical_id="serverEc2Role",
                kind=ResourceKind.IAM_ROLE,
                mapping_key="ec2_role",
                attributes={
                    "assume_role_policy": assume_role_policy(),
                    "managed_policy_arns": tuple(
                        constants.MANAGED_POLICY_ARN.format(name=name)
                        for name in constants.MANAGED_POLICY_NAMES
                    ),
                    "policies": (retention_policy(),),
                    "tags": self.context.build_tags("EC2", "serverEc2Role"),
                },
            )
        )

    def create_instance_profile(self, role: LogicalResource) -> LogicalResource:
        return self.plan.add(
            LogicalResource(
                logical_id="InstanceProfile",
                kind=ResourceKind.INSTANCE_PROFILE,
                mapping_key="instance_profile",
                depends_on={role.logical_id},
                attributes={"roles": (role.ref(),)},
            )
        )

    def create_ssh_security_group(self, vpc: LogicalResource) -> LogicalResource:
        return self.plan.add(
            LogicalResource(
                logical_id="SSHSecurityGroup",
                kind=ResourceKind.SECURITY_GROUP,
                mapping_key="ssh_security_group",
                depends_on={vpc.logical_id},
                attributes={
                    "group_description": "Security Group for SSH",
                    "vpc_id": vpc.ref(),
                    "ingress": (SSH_INGRESS,),
                    "egress": (ALLOW_ALL_EGRESS,),
                    "tags": self.context.build_tags("VPC", "SSHSecurityGroup"),
                },
            )
        )

    def create_instance_security_group(self, vpc: LogicalResource) -> LogicalResource:
        return self.plan.add(
            LogicalResource(
                logical_id="ec2InstanceSecurityGroup",
                kind=ResourceKind.SECURITY_GROUP,
                mapping_key="ec2_security_group",
                depends_on={vpc.logical_id},
                attributes={
                    "group_description": "Security Group for EC2 Instance",
                    "vpc_id": vpc.ref(),
                    "ingress": (),
                    "egress": (ALLOW_ALL_EGRESS,),
                    "tags": self.context.build_tags("EC2", "ec2InstanceSecurityGroup"),
                },
            )
        )
