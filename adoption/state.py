"""Read the current state of adopted EC2 resources.

Only the EC2 side of the stack is observed. IAM and S3 resources are left
unobserved, which the reconciler reports as "drift not evaluated". Whether the
provisioning engine already manages a resource comes from the resources
CloudFormation lists for the stack.
"""
from typing import Any, Callable, Optional

import boto3
from botocore.exceptions import ClientError

from adoption.exceptions import StateReadError
from adoption.models import (
    Action,
    AdoptionPlan,
    LogicalResource,
    ObservedResource,
    ReconciledPlan,
    ResourceKind,
    ResourceMapping,
    SecurityGroupRule,
)
from common.logger import logger


def _tags(description: dict) -> dict[str, str]:
    return {tag["Key"]: tag["Value"] for tag in description.get("Tags", [])}


def _rules(permissions: list[dict]) -> tuple:
    rules = []
    for permission in permissions:
        for ip_range in permission.get("IpRanges", []):
            rules.append(
                SecurityGroupRule(
                    protocol=permission["IpProtocol"],
                    from_port=permission.get("FromPort", 0),
                    to_port=permission.get("ToPort", 0),
                    cidr_ip=ip_range["CidrIp"],
                    description=ip_range.get("Description", ""),
                )
            )
    return tuple(rules)


def _is_missing_stack(error: ClientError) -> bool:
    error_info = (error.response or {}).get("Error", {})
    return error_info.get("Code") == "ValidationError" and "does not exist" in error_info.get(
        "Message", ""
    )


class Ec2StateReader:
    def __init__(
        self,
        client: Any = None,
        region: Optional[str] = None,
        cloudformation: Any = None,
    ) -> None:
        self.client = client or boto3.client("ec2", region_name=region)
        self.cloudformation = cloudformation or boto3.client(
            "cloudformation", region_name=region or self.client.meta.region_name
        )

    def read(
        self,
        plan: AdoptionPlan,
        mapping: ResourceMapping,
        stack_name: Optional[str] = None,
    ) -> dict[str, ObservedResource]:
        readers: dict[ResourceKind, Callable[[LogicalResource, str], dict]] = {
            ResourceKind.VPC: self.read_vpc,
            ResourceKind.INTERNET_GATEWAY: self.read_internet_gateway,
            ResourceKind.SUBNET: self.read_subnet,
            ResourceKind.ROUTE_TABLE: self.read_route_table,
            ResourceKind.SECURITY_GROUP: self.read_security_group,
            ResourceKind.INSTANCE: self.read_instance,
        }
        managed = self.read_managed_ids(stack_name) if stack_name else frozenset()
        observed = {}
        for resource in plan:
            physical_id = mapping.bound_id(resource.mapping_key)
            reader = readers.get(resource.kind)
            if physical_id and reader:
                observed[resource.logical_id] = ObservedResource(
                    physical_id=physical_id,
                    attributes=reader(resource, physical_id),
                    managed=resource.logical_id in managed,
                )
        observed.update(self.read_routes(plan, mapping, managed))
        return observed

    def _read_error(self, operation: str, e: ClientError) -> StateReadError:
        response = e.response or {}
        error_info = response.get("Error", {})
        error_code = error_info.get("Code", "UnknownError")
        error_message = error_info.get("Message")
        logger.error(f"Failed to read current state with {operation}: {error_code} - {error_message}")
        return StateReadError(f"{operation} failed: {error_code} - {error_message}")

    def _call(self, operation: str, **params) -> dict:
        try:
            return getattr(self.client, operation)(**params)
        except ClientError as e:
            raise self._read_error(operation, e) from e

    def read_managed_ids(self, stack_name: str) -> frozenset:
        """Logical ids CloudFormation already tracks in the stack."""
        try:
            response = self.cloudformation.describe_stack_resources(StackName=stack_name)
        except ClientError as e:
            if _is_missing_stack(e):
                logger.info(
                    "Stack not deployed yet, nothing is managed", extra={"stack": stack_name}
                )
                return frozenset()
            raise self._read_error("describe_stack_resources", e) from e
        return frozenset(item["LogicalResourceId"] for item in response["StackResources"])

    def read_association_ids(self, reconciled: ReconciledPlan) -> dict[str, str]:
        """Look up the ``rtbassoc-`` id behind each adopted ``subnet-id/rtb-id`` association."""
        association_ids = {}
        for entry in reconciled.with_action(Action.ADOPT):
            if entry.kind is not ResourceKind.ROUTE_TABLE_ASSOCIATION or not entry.physical_id:
                continue
            subnet_id, route_table_id = entry.physical_id.split("/")
            route_table = self._describe_route_table(route_table_id)
            for association in route_table.get("Associations", []):
                if association.get("SubnetId") == subnet_id:
                    association_ids[entry.logical_id] = association["RouteTableAssociationId"]
                    break
        return association_ids

    def read_vpc(self, resource: LogicalResource, vpc_id: str) -> dict:
        vpc = self._call("describe_vpcs", VpcIds=[vpc_id])["Vpcs"][0]
        hostnames = self._call(
            "describe_vpc_attribute", VpcId=vpc_id, Attribute="enableDnsHostnames"
        )
        support = self._call("describe_vpc_attribute", VpcId=vpc_id, Attribute="enableDnsSupport")
        return {
            "cidr_block": vpc["CidrBlock"],
            "enable_dns_hostnames": hostnames["EnableDnsHostnames"]["Value"],
            "enable_dns_support": support["EnableDnsSupport"]["Value"],
            "tags": _tags(vpc),
        }

    def read_internet_gateway(self, resource: LogicalResource, gateway_id: str) -> dict:
        gateway = self._call("describe_internet_gateways", InternetGatewayIds=[gateway_id])[
            "InternetGateways"
        ][0]
        attachments = gateway.get("Attachments", [])
        return {
            "vpc_id": attachments[0]["VpcId"] if attachments else None,
            "tags": _tags(gateway),
        }

    def read_subnet(self, resource: LogicalResource, subnet_id: str) -> dict:
        subnet = self._call("describe_subnets", SubnetIds=[subnet_id])["Subnets"][0]
        return {
            "vpc_id": subnet["VpcId"],
            "cidr_block": subnet["CidrBlock"],
            "availability_zone": subnet["AvailabilityZone"],
            "map_public_ip_on_launch": subnet["MapPublicIpOnLaunch"],
            "tags": _tags(subnet),
        }

    def read_route_table(self, resource: LogicalResource, route_table_id: str) -> dict:
        route_table = self._describe_route_table(route_table_id)
        return {"vpc_id": route_table["VpcId"], "tags": _tags(route_table)}

    def _describe_route_table(self, route_table_id: str) -> dict:
        return self._call("describe_route_tables", RouteTableIds=[route_table_id])[
            "RouteTables"
        ][0]

    def read_routes(
        self, plan: AdoptionPlan, mapping: ResourceMapping, managed: frozenset = frozenset()
    ) -> dict[str, ObservedResource]:
        """Default routes, observed through the route table that owns them."""
        observed = {}
        for route in plan.by_kind(ResourceKind.ROUTE):
            owner = plan.get(route.attributes["route_table_id"].logical_id)
            route_table_id = mapping.bound_id(owner.mapping_key)
            if not route_table_id:
                continue
            route_table = self._describe_route_table(route_table_id)
            destination = route.attributes["destination_cidr_block"]
            for entry in route_table.get("Routes", []):
                if entry.get("DestinationCidrBlock") == destination:
                    observed[route.logical_id] = ObservedResource(
                        physical_id=None,
                        attributes={
                            "route_table_id": route_table_id,
                            "destination_cidr_block": destination,
                            "gateway_id": entry.get("GatewayId"),
                        },
                        managed=route.logical_id in managed,
                    )
                    break
        return observed

    def read_security_group(self, resource: LogicalResource, group_id: str) -> dict:
        group = self._call("describe_security_groups", GroupIds=[group_id])["SecurityGroups"][0]
        return {
            "group_description": group["Description"],
            "vpc_id": group["VpcId"],
            "ingress": _rules(group.get("IpPermissions", [])),
            "egress": _rules(group.get("IpPermissionsEgress", [])),
            "tags": _tags(group),
        }

    def read_instance(self, resource: LogicalResource, instance_id: str) -> dict:
        reservations = self._call("describe_instances", InstanceIds=[instance_id])["Reservations"]
        instance = reservations[0]["Instances"][0]
        profile_arn = instance.get("IamInstanceProfile", {}).get("Arn", "")
        return {
            "instance_type": instance["InstanceType"],
            "image_id": instance["ImageId"],
            "subnet_id": instance["SubnetId"],
            "security_group_ids": tuple(g["GroupId"] for g in instance.get("SecurityGroups", [])),
            "iam_instance_profile": profile_arn.rsplit("/", 1)[-1] or None,
            "tags": _tags(instance),
        }
