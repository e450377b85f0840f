import os
from dataclasses import dataclass

import attrs
import pytest

from adoption.exceptions import CompositeIdError
from adoption.models import (
    Action,
    AdoptionPlan,
    AdoptionStrategy,
    AttributeChange,
    Ref,
    ResourceKind,
    ResourceMapping,
)
from adoption.reconciler import AdoptionReconciler, diff_attributes
from common.logger import set_log_level
from plan_test_helpers import (
    DRIFTED_AMI,
    DRIFTED_USER_DATA,
    dev_mapping,
    observed_reality,
    plan,
)

ADOPT = AdoptionStrategy.ADOPT_EXISTING
CREATE = AdoptionStrategy.CREATE_NEW

BINDINGS = [
    ("VPC", "vpc"),
    ("IGW", "internet_gateway"),
    ("ServerPublicSubnet1", "public_subnet1"),
    ("ServerPublicSubnet2", "public_subnet2"),
    ("ServerPublicSubnet1RouteTable", "route_table1"),
    ("ServerPublicSubnet2RouteTable", "route_table2"),
    ("ServerPublicSubnet1RouteTableAssociation", "route_table_association1"),
    ("ServerPublicSubnet2RouteTableAssociation", "route_table_association2"),
    ("SSHSecurityGroup", "ssh_security_group"),
    ("ec2InstanceSecurityGroup", "ec2_security_group"),
    ("serverEc2Role", "ec2_role"),
    ("InstanceProfile", "instance_profile"),
    ("assetBucket", "asset_bucket"),
    ("Instance", "ec2_instance"),
]


@dataclass(frozen=True)
class DriftTestCase:
    id: str
    logical_id: str
    attribute: str
    current: object
    reported: bool


DRIFT_CASES = (
    DriftTestCase("instance_ami", "Instance", "image_id", "ami-0000000000000000a", False),
    DriftTestCase("instance_boot_script", "Instance", "user_data", "echo other", False),
    DriftTestCase("ssh_group_rules", "SSHSecurityGroup", "ingress", (), False),
    DriftTestCase("instance_group_egress", "ec2InstanceSecurityGroup", "egress", (), False),
    DriftTestCase("instance_type", "Instance", "instance_type", "m5.large", True),
    DriftTestCase("vpc_cidr", "VPC", "cidr_block", "10.9.0.0/16", True),
    DriftTestCase("subnet_public_ip", "ServerPublicSubnet2", "map_public_ip_on_launch", False, True),
    DriftTestCase("group_description", "SSHSecurityGroup", "group_description", "ssh", True),
)


def with_attribute(observed, logical_id: str, attribute: str, value):
    current = observed[logical_id]
    attributes = dict(current.attributes)
    attributes[attribute] = value
    updated = dict(observed)
    updated[logical_id] = attrs.evolve(current, attributes=attributes)
    return updated


# ------------------- create vs adopt -------------------


def test_create_new_creates_every_resource(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    result = AdoptionReconciler(CREATE, dev_mapping).reconcile(plan)

    assert [entry.action for entry in result.entries] == [Action.CREATE] * len(plan)
    assert all(entry.physical_id is None for entry in result.entries)
    assert not result.has_changes


@pytest.mark.parametrize("logical_id,field", BINDINGS)
def test_adopt_existing_binds_catalogued_ids(
    plan: AdoptionPlan, dev_mapping: ResourceMapping, logical_id: str, field: str
):
    entry = AdoptionReconciler(ADOPT, dev_mapping).reconcile(plan).get(logical_id)

    assert entry.action is Action.ADOPT
    assert entry.physical_id == getattr(dev_mapping, field)
    assert not entry.implicit


def test_resource_without_bound_id_is_created(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    mapping = attrs.evolve(dev_mapping, ec2_instance=None)

    result = AdoptionReconciler(ADOPT, mapping).reconcile(plan)

    assert result.get("Instance").action is Action.CREATE
    assert result.get("Instance").physical_id is None
    assert result.get("VPC").action is Action.ADOPT


def test_entries_follow_dependency_order(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    result = AdoptionReconciler(ADOPT, dev_mapping).reconcile(plan)

    assert [entry.logical_id for entry in result.entries] == [
        resource.logical_id for resource in plan.dependency_order()
    ]


def test_strategy_accepts_string_value(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    reconciler = AdoptionReconciler("AdoptExisting", dev_mapping)

    assert reconciler.strategy is ADOPT


# ------------------- ignore sets -------------------


@pytest.mark.parametrize("case", DRIFT_CASES, ids=lambda case: case.id)
def test_drift_is_reported_only_on_enforced_attributes(
    plan: AdoptionPlan, dev_mapping: ResourceMapping, case: DriftTestCase
):
    observed = with_attribute(
        observed_reality(plan, dev_mapping), case.logical_id, case.attribute, case.current
    )

    entry = AdoptionReconciler(ADOPT, dev_mapping).reconcile(plan, observed).get(case.logical_id)

    reported = [change.attribute for change in entry.changes]
    assert (case.attribute in reported) is case.reported


def test_adopted_instance_never_diffs_image_or_boot_script(
    plan: AdoptionPlan, dev_mapping: ResourceMapping
):
    observed = observed_reality(plan, dev_mapping)

    entry = AdoptionReconciler(ADOPT, dev_mapping).reconcile(plan, observed).get("Instance")

    assert observed["Instance"].attributes["image_id"] == DRIFTED_AMI
    assert observed["Instance"].attributes["user_data"] == DRIFTED_USER_DATA
    assert entry.changes == ()
    assert {"user_data", "image_id"} <= entry.ignored_attributes


def test_adopted_instance_renders_without_ignored_attributes(
    plan: AdoptionPlan, dev_mapping: ResourceMapping
):
    entry = AdoptionReconciler(ADOPT, dev_mapping).reconcile(plan).get("Instance")

    assert "user_data" not in entry.rendered_attributes
    assert "image_id" not in entry.rendered_attributes
    assert entry.rendered_attributes["instance_type"] == "m7g.large"


def test_adopted_instance_pins_catalogued_ami(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    mapping = attrs.evolve(dev_mapping, ami_id="ami-0abcdef1234567890")

    entry = AdoptionReconciler(ADOPT, mapping).reconcile(plan).get("Instance")

    assert entry.rendered_attributes["image_id"] == "ami-0abcdef1234567890"


def test_created_instance_still_renders_boot_script(
    plan: AdoptionPlan, dev_mapping: ResourceMapping
):
    entry = AdoptionReconciler(CREATE, dev_mapping).reconcile(plan).get("Instance")

    assert "user_data" in entry.rendered_attributes
    assert "image_id" in entry.rendered_attributes
    assert any("not enforced" in note for note in entry.notes)


def test_adopted_security_group_rules_are_not_rendered(
    plan: AdoptionPlan, dev_mapping: ResourceMapping
):
    entry = AdoptionReconciler(ADOPT, dev_mapping).reconcile(plan).get("SSHSecurityGroup")

    assert "ingress" not in entry.rendered_attributes
    assert entry.rendered_attributes["group_description"] == "Security Group for SSH"


def test_unobserved_resource_is_noted_not_diffed(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    entry = AdoptionReconciler(ADOPT, dev_mapping).reconcile(plan).get("serverEc2Role")

    assert entry.changes == ()
    assert entry.notes == ("Current state not observed, drift not evaluated",)


def test_reference_to_created_resource_counts_as_change(
    plan: AdoptionPlan, dev_mapping: ResourceMapping
):
    observed = observed_reality(plan, dev_mapping)
    mapping = attrs.evolve(dev_mapping, vpc=None)

    entry = AdoptionReconciler(ADOPT, mapping).reconcile(plan, observed).get("ServerPublicSubnet1RouteTable")

    assert entry.changes == (
        AttributeChange("vpc_id", Ref("VPC"), dev_mapping.vpc),
    )


# ------------------- routes -------------------


def test_routes_are_adopted_implicitly(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    observed = observed_reality(plan, dev_mapping)

    result = AdoptionReconciler(ADOPT, dev_mapping).reconcile(plan, observed)

    for route in plan.by_kind(ResourceKind.ROUTE):
        entry = result.get(route.logical_id)
        assert entry.action is Action.ADOPT
        assert entry.implicit
        assert entry.physical_id is None
        assert entry.changes == ()
        assert any("converges on the next run" in note for note in entry.notes)


def test_route_pointing_elsewhere_is_a_change(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    observed = with_attribute(
        observed_reality(plan, dev_mapping),
        "ServerPublicSubnet1DefaultRoute",
        "gateway_id",
        "igw-0123456789abcdef0",
    )

    entry = AdoptionReconciler(ADOPT, dev_mapping).reconcile(plan, observed).get(
        "ServerPublicSubnet1DefaultRoute"
    )

    assert entry.changes == (
        AttributeChange("gateway_id", dev_mapping.internet_gateway, "igw-0123456789abcdef0"),
    )


def test_routes_are_created_under_create_new(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    result = AdoptionReconciler(CREATE, dev_mapping).reconcile(plan)

    assert {entry.action for entry in result.entries if entry.kind is ResourceKind.ROUTE} == {
        Action.CREATE
    }


# ------------------- composite ids -------------------


def test_association_with_swapped_route_table_fails(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    mapping = attrs.evolve(
        dev_mapping,
        route_table_association1=f"{dev_mapping.public_subnet1}/{dev_mapping.route_table2}",
    )

    with pytest.raises(CompositeIdError, match="ServerPublicSubnet1RouteTableAssociation"):
        AdoptionReconciler(ADOPT, mapping).reconcile(plan)


def test_association_with_extra_parts_fails(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    mapping = attrs.evolve(
        dev_mapping,
        route_table_association2=f"{dev_mapping.route_table_association2}/extra",
    )

    with pytest.raises(CompositeIdError, match="is not of the form"):
        AdoptionReconciler(ADOPT, mapping).reconcile(plan)


def test_association_with_created_endpoint_fails(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    mapping = attrs.evolve(dev_mapping, public_subnet1=None)

    with pytest.raises(CompositeIdError, match="does not match"):
        AdoptionReconciler(ADOPT, mapping).reconcile(plan)


# ------------------- idempotence -------------------


def test_second_run_proposes_no_changes(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    reconciler = AdoptionReconciler(ADOPT, dev_mapping)
    first = reconciler.reconcile(plan, observed_reality(plan, dev_mapping))

    second = reconciler.reconcile(plan, first.applied_state())

    assert not first.has_changes
    assert not second.has_changes
    assert second.notes() == []


def test_applied_state_keeps_ignored_attributes(plan: AdoptionPlan, dev_mapping: ResourceMapping):
    first = AdoptionReconciler(ADOPT, dev_mapping).reconcile(
        plan, observed_reality(plan, dev_mapping)
    )

    state = first.applied_state()

    assert state["Instance"].attributes["image_id"] == DRIFTED_AMI
    assert state["Instance"].physical_id == dev_mapping.ec2_instance
    assert all(resource.managed for resource in state.values())


# ------------------- diff -------------------


def test_diff_compares_unordered_and_subset_attributes():
    desired = {
        "security_group_ids": ("sg-1", "sg-2"),
        "tags": {"Name": "EC2-Dev/EC2/Instance"},
    }
    current = {
        "security_group_ids": ("sg-2", "sg-1"),
        "tags": {"Name": "EC2-Dev/EC2/Instance", "aws:cloudformation:stack-name": "EC2-Dev"},
    }

    assert diff_attributes(desired, current) == []


def test_diff_skips_unreported_attributes():
    assert diff_attributes({"cidr_block": "10.0.0.0/16"}, {}) == []


def test_diff_respects_ignore_set():
    changes = diff_attributes(
        {"image_id": "ami-1", "instance_type": "m7g.large"},
        {"image_id": "ami-2", "instance_type": "m7g.xlarge"},
        frozenset({"image_id"}),
    )

    assert changes == [AttributeChange("instance_type", "m7g.large", "m7g.xlarge")]


# ------------------- logging -------------------


@pytest.fixture
def verbose_logging():
    set_log_level("DEBUG")
    yield
    set_log_level(os.getenv("LOG_LEVEL", "INFO"))


@pytest.mark.parametrize("strategy", [CREATE, ADOPT])
def test_reconcile_logs_every_decision(
    verbose_logging, plan: AdoptionPlan, dev_mapping: ResourceMapping, strategy
):
    observed = with_attribute(
        observed_reality(plan, dev_mapping), "VPC", "cidr_block", "10.9.0.0/16"
    )

    result = AdoptionReconciler(strategy, dev_mapping).reconcile(plan, observed)

    assert len(result.entries) == len(plan)
