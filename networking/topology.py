from typing import Sequence

from attrs import define

from adoption.models import AdoptionPlan, LogicalResource, ResourceKind
from common import constants
from common.stack_context import StackContext

SUBNET_COUNT = 2


@define(slots=True, frozen=True)
class Topology:
    vpc: LogicalResource
    internet_gateway: LogicalResource
    subnets: tuple
    route_tables: tuple
    associations: tuple
    routes: tuple


class TopologyBuilder:
    """Declares the public network: VPC, gateway, two subnets and their routing."""

    def __init__(self, plan: AdoptionPlan, context: StackContext) -> None:
        self.plan = plan
        self.context = context

    def build(self, zones: Sequence[str]) -> Topology:
        zones = self.select_zones(zones)
        vpc = self.create_vpc()
        internet_gateway = self.create_internet_gateway(vpc)

        subnets, route_tables, associations, routes = [], [], [], []
        for index, (zone, cidr) in enumerate(zip(zones, constants.PUBLIC_SUBNET_CIDRS), start=1):
            subnet = self.create_public_subnet(vpc, index, zone, cidr)
            route_table = self.create_route_table(vpc, index)
            associations.append(self.associate(subnet, route_table, index))
            routes.append(self.add_default_route(route_table, internet_gateway, index))
            subnets.append(subnet)
            route_tables.append(route_table)

        return Topology(
            vpc=vpc,
            internet_gateway=internet_gateway,
            subnets=tuple(subnets),
            route_tables=tuple(route_tables),
            associations=tuple(associations),
            routes=tuple(routes),
        )

    @staticmethod
    def select_zones(zones: Sequence[str]) -> tuple:
        """First two zones in the order the lookup returned them."""
        selected = tuple(zones[:SUBNET_COUNT])
        if len(selected) < SUBNET_COUNT:
            raise ValueError(
                f"At least {SUBNET_COUNT} availability zones are required, got {len(selected)}"
            )
        if len(set(selected)) != SUBNET_COUNT:
            raise ValueError(f"Availability zones must be distinct, got {selected}")
        return selected

    def create_vpc(self) -> LogicalResource:
        return self.plan.add(
            LogicalResource(
                logical_id="VPC",
                kind=ResourceKind.VPC,
                mapping_key="vpc",
                attributes={
                    "cidr_block": constants.VPC_CIDR,
                    "enable_dns_hostnames": True,
                    "enable_dns_support": True,
                    "tags": self.context.build_tags("VPC"),
                },
            )
        )

    def create_internet_gateway(self, vpc: LogicalResource) -> LogicalResource:
        return self.plan.add(
            LogicalResource(
                logical_id="IGW",
                kind=ResourceKind.INTERNET_GATEWAY,
                mapping_key="internet_gateway",
                depends_on={vpc.logical_id},
                attributes={
                    "vpc_id": vpc.ref(),
                    "tags": self.context.build_tags("IGW"),
                },
            )
        )

    def create_public_subnet(
        self, vpc: LogicalResource, index: int, zone: str, cidr: str
    ) -> LogicalResource:
        name = f"ServerPublicSubnet{index}"
        return self.plan.add(
            LogicalResource(
                logical_id=name,
                kind=ResourceKind.SUBNET,
                mapping_key=f"public_subnet{index}",
                depends_on={vpc.logical_id},
                attributes={
                    "vpc_id": vpc.ref(),
                    "cidr_block": cidr,
                    "availability_zone": zone,
                    "map_public_ip_on_launch": True,
                    "tags": self.context.build_tags("VPC", name),
                },
            )
        )

    def create_route_table(self, vpc: LogicalResource, index: int) -> LogicalResource:
        name = f"ServerPublicSubnet{index}"
        return self.plan.add(
            LogicalResource(
                logical_id=f"{name}RouteTable",
                kind=ResourceKind.ROUTE_TABLE,
                mapping_key=f"route_table{index}",
                depends_on={vpc.logical_id},
                attributes={
                    "vpc_id": vpc.ref(),
                    "tags": self.context.build_tags("VPC", name),
                },
            )
        )

    def associate(
        self, subnet: LogicalResource, route_table: LogicalResource, index: int
    ) -> LogicalResource:
        return self.plan.add(
            LogicalResource(
                logical_id=f"ServerPublicSubnet{index}RouteTableAssociation",
                kind=ResourceKind.ROUTE_TABLE_ASSOCIATION,
                mapping_key=f"route_table_association{index}",
                depends_on={subnet.logical_id, route_table.logical_id},
                attributes={
                    "subnet_id": subnet.ref(),
                    "route_table_id": route_table.ref(),
                },
            )
        )

    def add_default_route(
        self, route_table: LogicalResource, internet_gateway: LogicalResource, index: int
    ) -> LogicalResource:
        # Routes have no id of their own and are adopted through their route table.
        return self.plan.add(
            LogicalResource(
                logical_id=f"ServerPublicSubnet{index}DefaultRoute",
                kind=ResourceKind.ROUTE,
                depends_on={route_table.logical_id, internet_gateway.logical_id},
                attributes={
                    "route_table_id": route_table.ref(),
                    "destination_cidr_block": constants.ANY_IPV4_CIDR,
                    "gateway_id": internet_gateway.ref(),
                },
            )
        )
