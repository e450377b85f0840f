from dataclasses import dataclass
from typing import Any, Mapping, Optional

import attrs
import pytest
from aws_cdk import App
from aws_cdk.assertions import Template

from adoption import catalog
from adoption.models import AdoptionStrategy, ResourceMapping
from common.config import DeploymentConfig
from ec2_server.ec2_server_stack import Ec2ServerStack

AMI_OVERRIDE = "ami-0abcdef1234567890"


# ------------------- Test Case Data Classes -------------------
@dataclass(frozen=True)
class SecurityGroupTestCase:
    id: str
    description: str
    ingress: Optional[list]
    egress: list


@dataclass(frozen=True)
class DeletionPolicyTestCase:
    id: str
    update_policy: str
    delete_policy: str


# ------------------- Helper Functions -------------------


def find_resources_by_type(
    template: Template, resource_type: str, props: Optional[dict] = None
) -> Mapping[str, Any]:

    return template.find_resources(resource_type, props=props)


def get_single_resource_id(
    resources: Mapping[str, Any], resource_type: str = "resource"
) -> str:
    return next(iter(resources))


def build_stack(
    strategy: AdoptionStrategy = AdoptionStrategy.CREATE_NEW,
    mapping: Optional[ResourceMapping] = None,
    stack_id: str = "EC2-Dev",
    state_reader: Any = None,
) -> Ec2ServerStack:
    app = App()
    config = DeploymentConfig(environment="dev", strategy=strategy)
    return Ec2ServerStack(
        app, stack_id, config=config, mapping=mapping, state_reader=state_reader
    )


def build_template(
    strategy: AdoptionStrategy = AdoptionStrategy.CREATE_NEW,
    mapping: Optional[ResourceMapping] = None,
) -> Template:
    return Template.from_stack(build_stack(strategy, mapping))


# ------------------- Pytest Fixtures -------------------


@pytest.fixture
def template() -> Template:
    return build_template()


@pytest.fixture
def json_template(template: Template) -> Mapping[str, Any]:
    return template.to_json()


@pytest.fixture
def adopted_template() -> Template:
    return build_template(AdoptionStrategy.ADOPT_EXISTING)


@pytest.fixture
def adopted_json_template(adopted_template: Template) -> Mapping[str, Any]:
    return adopted_template.to_json()


@pytest.fixture
def pinned_ami_template() -> Template:
    mapping = attrs.evolve(catalog.lookup("dev"), ami_id=AMI_OVERRIDE)
    return build_template(AdoptionStrategy.ADOPT_EXISTING, mapping)
