from typing import Any, Mapping, Optional

from aws_cdk import (
    CfnOutput,
    CfnResource,
    CfnTag,
    Fn,
    RemovalPolicy,
    Stack,
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_s3 as s3,
)
from constructs import Construct

import common.constants as constants
from adoption import catalog
from adoption.import_mapping import build_import_mapping
from adoption.models import (
    Action,
    AdoptionPlan,
    BootScript,
    MachineImageLookup,
    ObservedResource,
    ReconciledPlan,
    ReconciledResource,
    Ref,
    ResourceKind,
    ResourceMapping,
)
from adoption.reconciler import AdoptionReconciler
from adoption.state import Ec2StateReader
from common.config import DeploymentConfig
from common.logger import logger
from common.stack_context import StackContext
from ec2_server.access_control import AccessControlBuilder
from ec2_server.outputs import build_outputs
from ec2_server.server import ServerBuilder
from networking.topology import TopologyBuilder


class Ec2ServerStack(Stack):
    """Single EC2 server in a public VPC, created fresh or adopted from an existing stack."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: DeploymentConfig,
        mapping: Optional[ResourceMapping] = None,
        observed: Optional[Mapping[str, ObservedResource]] = None,
        state_reader: Optional[Ec2StateReader] = None,
        detect_drift: bool = False,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self.context = StackContext.of(self)
        self.mapping = mapping or catalog.lookup(config.environment)
        self.resources: dict[str, CfnResource] = {}
        self._renderers = {
            ResourceKind.VPC: self._render_vpc,
            ResourceKind.INTERNET_GATEWAY: self._render_internet_gateway,
            ResourceKind.SUBNET: self._render_subnet,
            ResourceKind.ROUTE_TABLE: self._render_route_table,
            ResourceKind.ROUTE_TABLE_ASSOCIATION: self._render_association,
            ResourceKind.ROUTE: self._render_route,
            ResourceKind.SECURITY_GROUP: self._render_security_group,
            ResourceKind.IAM_ROLE: self._render_role,
            ResourceKind.INSTANCE_PROFILE: self._render_instance_profile,
            ResourceKind.BUCKET: self._render_bucket,
            ResourceKind.INSTANCE: self._render_instance,
        }

        self.plan = self.build_plan()
        if observed is None and state_reader is not None and detect_drift:
            observed = state_reader.read(self.plan, self.mapping, stack_name=self.stack_name)
        self.reconciled = AdoptionReconciler(config.strategy, self.mapping).reconcile(
            self.plan, observed
        )
        for logical_id, note in self.reconciled.notes():
            logger.info(note, extra={"stack": self.stack_name, "logical_id": logical_id})

        self.render(self.reconciled)

        association_ids = {}
        if state_reader is not None:
            association_ids = state_reader.read_association_ids(self.reconciled)
        self.import_mapping = build_import_mapping(self.reconciled, association_ids)

        for name, value in build_outputs(self.output_values()).items():
            CfnOutput(self, name, value=value)

    # Plan

    def build_plan(self) -> AdoptionPlan:
        plan = AdoptionPlan()
        topology = TopologyBuilder(plan, self.context).build(self.availability_zones)
        access = AccessControlBuilder(plan, self.context).build(topology.vpc)
        ServerBuilder(plan, self.context, self.config).build(topology, access)
        return plan

    # Rendering

    def render(self, reconciled: ReconciledPlan) -> None:
        for entry in reconciled.entries:
            resource = self._renderers[entry.kind](entry)
            resource.override_logical_id(entry.logical_id)
            if entry.action is Action.ADOPT and entry.physical_id:
                resource.apply_removal_policy(RemovalPolicy.RETAIN)
                resource.add_metadata(constants.PHYSICAL_ID_METADATA_KEY, entry.physical_id)
            else:
                resource.apply_removal_policy(RemovalPolicy.DESTROY)
            # Adopted resources carry literal ids, so ordering must be explicit.
            for dependency in sorted(entry.resource.depends_on):
                resource.node.add_dependency(self.resources[dependency])
            self.resources[entry.logical_id] = resource

    def _resolve_attribute(self, value: Any) -> Any:
        if isinstance(value, Ref):
            resource = self.resources[value.logical_id]
            if isinstance(resource, ec2.CfnSecurityGroup):
                return resource.attr_group_id
            return resource.ref
        if isinstance(value, MachineImageLookup):
            return self._machine_image(value)
        if isinstance(value, BootScript):
            variables = {
                name: self._resolve_attribute(item) for name, item in value.variables.items()
            }
            return Fn.base64(Fn.sub(value.template, variables))
        if isinstance(value, (list, tuple)):
            return [self._resolve_attribute(item) for item in value]
        return value

    def _machine_image(self, lookup: MachineImageLookup) -> str:
        cpu_type = (
            ec2.AmazonLinuxCpuType.ARM_64
            if lookup.architecture == "arm64"
            else ec2.AmazonLinuxCpuType.X86_64
        )
        image = ec2.MachineImage.latest_amazon_linux2023(cpu_type=cpu_type)
        return image.get_image(self).image_id

    @staticmethod
    def _physical_name(entry: ReconciledResource) -> Optional[str]:
        """Name an adopted resource is imported by, so the template carries it literally."""
        if entry.action is Action.ADOPT:
            return entry.physical_id
        return None

    @staticmethod
    def _tags(attributes: Mapping[str, Any]) -> Optional[list]:
        tags = attributes.get("tags")
        if not tags:
            return None
        return [CfnTag(key=key, value=value) for key, value in tags.items()]

    def _render_vpc(self, entry: ReconciledResource) -> ec2.CfnVPC:
        attrs = entry.rendered_attributes
        return ec2.CfnVPC(
            self,
            entry.logical_id,
            cidr_block=attrs["cidr_block"],
            enable_dns_hostnames=attrs["enable_dns_hostnames"],
            enable_dns_support=attrs["enable_dns_support"],
            tags=self._tags(attrs),
        )

    def _render_internet_gateway(self, entry: ReconciledResource) -> ec2.CfnInternetGateway:
        attrs = entry.rendered_attributes
        gateway = ec2.CfnInternetGateway(self, entry.logical_id, tags=self._tags(attrs))
        if entry.action is Action.CREATE:
            # An adopted gateway is already attached.
            attachment = ec2.CfnVPCGatewayAttachment(
                self,
                f"{entry.logical_id}Attachment",
                vpc_id=self._resolve_attribute(attrs["vpc_id"]),
                internet_gateway_id=gateway.ref,
            )
            attachment.override_logical_id(attachment.node.id)
            self.resources[attachment.node.id] = attachment
        return gateway

    def _render_subnet(self, entry: ReconciledResource) -> ec2.CfnSubnet:
        attrs = entry.rendered_attributes
        return ec2.CfnSubnet(
            self,
            entry.logical_id,
            vpc_id=self._resolve_attribute(attrs["vpc_id"]),
            cidr_block=attrs["cidr_block"],
            availability_zone=attrs["availability_zone"],
            map_public_ip_on_launch=attrs["map_public_ip_on_launch"],
            tags=self._tags(attrs),
        )

    def _render_route_table(self, entry: ReconciledResource) -> ec2.CfnRouteTable:
        attrs = entry.rendered_attributes
        return ec2.CfnRouteTable(
            self,
            entry.logical_id,
            vpc_id=self._resolve_attribute(attrs["vpc_id"]),
            tags=self._tags(attrs),
        )

    def _render_association(
        self, entry: ReconciledResource
    ) -> ec2.CfnSubnetRouteTableAssociation:
        attrs = entry.rendered_attributes
        return ec2.CfnSubnetRouteTableAssociation(
            self,
            entry.logical_id,
            subnet_id=self._resolve_attribute(attrs["subnet_id"]),
            route_table_id=self._resolve_attribute(attrs["route_table_id"]),
        )

    def _render_route(self, entry: ReconciledResource) -> ec2.CfnRoute:
        attrs = entry.rendered_attributes
        route = ec2.CfnRoute(
            self,
            entry.logical_id,
            route_table_id=self._resolve_attribute(attrs["route_table_id"]),
            destination_cidr_block=attrs["destination_cidr_block"],
            gateway_id=self._resolve_attribute(attrs["gateway_id"]),
        )
        attachment = self.resources.get(f"{attrs['gateway_id'].logical_id}Attachment")
        if attachment is not None:
            route.node.add_dependency(attachment)
        return route

    def _render_security_group(self, entry: ReconciledResource) -> ec2.CfnSecurityGroup:
        attrs = entry.rendered_attributes
        ingress = [
            ec2.CfnSecurityGroup.IngressProperty(
                ip_protocol=rule.protocol,
                from_port=rule.from_port,
                to_port=rule.to_port,
                cidr_ip=rule.cidr_ip,
                description=rule.description,
            )
            for rule in attrs.get("ingress", ())
        ]
        egress = [
            ec2.CfnSecurityGroup.EgressProperty(
                ip_protocol=rule.protocol,
                from_port=rule.from_port,
                to_port=rule.to_port,
                cidr_ip=rule.cidr_ip,
                description=rule.description,
            )
            for rule in attrs.get("egress", ())
        ]
        return ec2.CfnSecurityGroup(
            self,
            entry.logical_id,
            group_description=attrs["group_description"],
            vpc_id=self._resolve_attribute(attrs["vpc_id"]),
            security_group_ingress=ingress or None,
            security_group_egress=egress or None,
            tags=self._tags(attrs),
        )

    def _render_role(self, entry: ReconciledResource) -> iam.CfnRole:
        attrs = entry.rendered_attributes
        return iam.CfnRole(
            self,
            entry.logical_id,
            role_name=self._physical_name(entry),
            assume_role_policy_document=attrs["assume_role_policy"],
            managed_policy_arns=list(attrs["managed_policy_arns"]),
            policies=[
                iam.CfnRole.PolicyProperty(
                    policy_name=policy["PolicyName"],
                    policy_document=policy["PolicyDocument"],
                )
                for policy in attrs["policies"]
            ],
            tags=self._tags(attrs),
        )

    def _render_instance_profile(self, entry: ReconciledResource) -> iam.CfnInstanceProfile:
        attrs = entry.rendered_attributes
        return iam.CfnInstanceProfile(
            self,
            entry.logical_id,
            instance_profile_name=self._physical_name(entry),
            roles=self._resolve_attribute(attrs["roles"]),
        )

    def _render_bucket(self, entry: ReconciledResource) -> s3.CfnBucket:
        attrs = entry.rendered_attributes
        block = attrs["public_access_block"]
        return s3.CfnBucket(
            self,
            entry.logical_id,
            bucket_name=self._physical_name(entry),
            public_access_block_configuration=s3.CfnBucket.PublicAccessBlockConfigurationProperty(
                block_public_acls=block["BlockPublicAcls"],
                block_public_policy=block["BlockPublicPolicy"],
                ignore_public_acls=block["IgnorePublicAcls"],
                restrict_public_buckets=block["RestrictPublicBuckets"],
            ),
            ownership_controls=s3.CfnBucket.OwnershipControlsProperty(
                rules=[
                    s3.CfnBucket.OwnershipControlsRuleProperty(
                        object_ownership=attrs["object_ownership"]
                    )
                ]
            ),
            tags=self._tags(attrs),
        )

    def _render_instance(self, entry: ReconciledResource) -> ec2.CfnInstance:
        attrs = entry.rendered_attributes
        return ec2.CfnInstance(
            self,
            entry.logical_id,
            instance_type=attrs["instance_type"],
            image_id=self._resolve_attribute(attrs.get("image_id")),
            subnet_id=self._resolve_attribute(attrs["subnet_id"]),
            security_group_ids=self._resolve_attribute(attrs["security_group_ids"]),
            iam_instance_profile=self._resolve_attribute(attrs["iam_instance_profile"]),
            user_data=self._resolve_attribute(attrs.get("user_data")),
            tags=self._tags(attrs),
        )

    # Outputs

    def output_values(self) -> dict[str, Any]:
        instance = self.resources["Instance"]
        return {
            "vpc_id": self.resources["VPC"].ref,
            "public_subnet1_id": self.resources["ServerPublicSubnet1"].ref,
            "public_subnet2_id": self.resources["ServerPublicSubnet2"].ref,
            "ssh_security_group_id": self.resources["SSHSecurityGroup"].attr_group_id,
            "ec2_security_group_id": self.resources["ec2InstanceSecurityGroup"].attr_group_id,
            "ec2_role_name": self.resources["serverEc2Role"].ref,
            "instance_profile_name": self.resources["InstanceProfile"].ref,
            "asset_bucket_name": self.resources["assetBucket"].ref,
            "instance_id": instance.ref,
            "instance_public_ip": instance.attr_public_ip,
            "instance_public_dns": instance.attr_public_dns_name,
        }
