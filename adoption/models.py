from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional

from attrs import define, field, fields, validators

from adoption.exceptions import PlanError


class EnvironmentName(str, Enum):
    DEV = "dev"
    STG = "stg"
    PROD = "prod"


class AdoptionStrategy(str, Enum):
    CREATE_NEW = "CreateNew"
    ADOPT_EXISTING = "AdoptExisting"


class Action(str, Enum):
    CREATE = "create"
    ADOPT = "adopt"


class ResourceKind(str, Enum):
    VPC = "vpc"
    INTERNET_GATEWAY = "internet_gateway"
    SUBNET = "subnet"
    ROUTE_TABLE = "route_table"
    ROUTE_TABLE_ASSOCIATION = "route_table_association"
    ROUTE = "route"
    SECURITY_GROUP = "security_group"
    IAM_ROLE = "iam_role"
    INSTANCE_PROFILE = "instance_profile"
    BUCKET = "bucket"
    INSTANCE = "instance"


# Kinds the provisioning engine cannot bind to an existing object by id.
UNBINDABLE_KINDS = frozenset({ResourceKind.ROUTE})


def _freeze_mapping(value: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


# ---------- attribute values ----------


@define(slots=True, frozen=True)
class Ref:
    """Primary identifier of another logical resource in the same plan."""

    logical_id: str


@define(slots=True, frozen=True)
class SecurityGroupRule:
    protocol: str
    from_port: int
    to_port: int
    cidr_ip: str
    description: str = field(default="", eq=False)


@define(slots=True, frozen=True)
class MachineImageLookup:
    """Latest Amazon Linux 2023 image for an architecture, resolved by the engine."""

    architecture: str


@define(slots=True, frozen=True)
class BootScript:
    """Boot script template plus the variables substituted into it."""

    template: str
    variables: Mapping[str, Any] = field(factory=dict, converter=_freeze_mapping)


def iter_refs(value: Any) -> Iterator[Ref]:
    if isinstance(value, Ref):
        yield value
    elif isinstance(value, BootScript):
        yield from iter_refs(value.variables)
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_refs(item)
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            yield from iter_refs(item)


# ---------- physical identifiers ----------


def _prefixed(prefix: str):
    def check(instance, attribute, value) -> None:
        if not value.startswith(prefix) or len(value) == len(prefix):
            raise ValueError(
                f"{attribute.name} must be a '{prefix}' identifier, got {value!r}"
            )

    return validators.optional([validators.instance_of(str), check])


def _association(instance, attribute, value) -> None:
    if value is None:
        return
    subnet_id, _, route_table_id = value.partition("/")
    if not subnet_id.startswith("subnet-") or not route_table_id.startswith("rtb-"):
        raise ValueError(
            f"{attribute.name} must have the form 'subnet-id/rtb-id', got {value!r}"
        )


_name = validators.optional([validators.instance_of(str), validators.min_len(1)])


@define(slots=True, frozen=True, kw_only=True)
class ResourceMapping:
    """Physical identifiers of the resources already deployed for one environment."""

    vpc: Optional[str] = field(default=None, validator=_prefixed("vpc-"))
    internet_gateway: Optional[str] = field(default=None, validator=_prefixed("igw-"))
    public_subnet1: Optional[str] = field(default=None, validator=_prefixed("subnet-"))
    public_subnet2: Optional[str] = field(default=None, validator=_prefixed("subnet-"))
    route_table1: Optional[str] = field(default=None, validator=_prefixed("rtb-"))
    route_table2: Optional[str] = field(default=None, validator=_prefixed("rtb-"))
    route_table_association1: Optional[str] = field(default=None, validator=_association)
    route_table_association2: Optional[str] = field(default=None, validator=_association)
    ssh_security_group: Optional[str] = field(default=None, validator=_prefixed("sg-"))
    ec2_security_group: Optional[str] = field(default=None, validator=_prefixed("sg-"))
    ec2_role: Optional[str] = field(default=None, validator=_name)
    instance_profile: Optional[str] = field(default=None, validator=_name)
    asset_bucket: Optional[str] = field(default=None, validator=_name)
    ec2_instance: Optional[str] = field(default=None, validator=_prefixed("i-"))
    ami_id: Optional[str] = field(default=None, validator=_prefixed("ami-"))

    @classmethod
    def required_fields(cls) -> tuple[str, ...]:
        return tuple(a.name for a in fields(cls) if a.name != "ami_id")

    def bound_id(self, key: Optional[str]) -> Optional[str]:
        if key is None:
            return None
        if key not in self.required_fields():
            raise KeyError(f"Unknown resource mapping field: {key}")
        return getattr(self, key)

    def missing_fields(self) -> tuple[str, ...]:
        return tuple(name for name in self.required_fields() if not getattr(self, name))

    def is_complete(self) -> bool:
        return not self.missing_fields()


# ---------- plan ----------


@define(slots=True, frozen=True)
class LogicalResource:
    logical_id: str
    kind: ResourceKind
    attributes: Mapping[str, Any] = field(factory=dict, converter=_freeze_mapping)
    depends_on: frozenset = field(factory=frozenset, converter=frozenset)
    ignore_attributes: frozenset = field(factory=frozenset, converter=frozenset)
    mapping_key: Optional[str] = None

    @property
    def bindable(self) -> bool:
        return self.kind not in UNBINDABLE_KINDS

    def refs(self) -> frozenset:
        return frozenset(ref.logical_id for ref in iter_refs(self.attributes))

    def ref(self) -> Ref:
        return Ref(self.logical_id)


class AdoptionPlan:
    """Logical resources in dependency order with explicit dependency edges.

    A resource can only be added once everything it depends on is in the plan,
    so insertion order is always a valid dependency order.
    """

    def __init__(self) -> None:
        self._resources: dict[str, LogicalResource] = {}

    def add(self, resource: LogicalResource) -> LogicalResource:
        if resource.logical_id in self._resources:
            raise PlanError(f"Duplicate logical resource: {resource.logical_id}")
        unknown = sorted(resource.depends_on - self._resources.keys())
        if unknown:
            raise PlanError(
                f"{resource.logical_id} depends on undeclared resources: {', '.join(unknown)}"
            )
        # Adopted resources carry literal ids, so a Ref is not an ordering edge by itself.
        undeclared = sorted(resource.refs() - resource.depends_on)
        if undeclared:
            raise PlanError(
                f"{resource.logical_id} references resources missing from depends_on: "
                f"{', '.join(undeclared)}"
            )
        self._resources[resource.logical_id] = resource
        return resource

    def get(self, logical_id: str) -> LogicalResource:
        return self._resources[logical_id]

    def by_kind(self, kind: ResourceKind) -> list[LogicalResource]:
        return [r for r in self._resources.values() if r.kind is kind]

    def dependency_order(self) -> tuple[LogicalResource, ...]:
        return tuple(self._resources.values())

    def edges(self) -> list[tuple[str, str]]:
        """(dependent, dependency) pairs."""
        return [
            (resource.logical_id, dependency)
            for resource in self._resources.values()
            for dependency in sorted(resource.depends_on)
        ]

    def __iter__(self) -> Iterator[LogicalResource]:
        return iter(self._resources.values())

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, logical_id: object) -> bool:
        return logical_id in self._resources


# ---------- observed state and reconciliation output ----------


@define(slots=True, frozen=True)
class ObservedResource:
    """Current state of a physical object as seen by the provisioning engine."""

    physical_id: Optional[str]
    attributes: Mapping[str, Any] = field(factory=dict, converter=_freeze_mapping)
    managed: bool = True


@define(slots=True, frozen=True)
class AttributeChange:
    attribute: str
    desired: Any
    current: Any


@define(slots=True, frozen=True)
class ReconciledResource:
    resource: LogicalResource
    action: Action
    physical_id: Optional[str] = None
    rendered_attributes: Mapping[str, Any] = field(factory=dict, converter=_freeze_mapping)
    resolved_attributes: Mapping[str, Any] = field(factory=dict, converter=_freeze_mapping)
    ignored_attributes: frozenset = field(factory=frozenset, converter=frozenset)
    changes: tuple = field(factory=tuple, converter=tuple)
    notes: tuple = field(factory=tuple, converter=tuple)
    implicit: bool = False

    @property
    def logical_id(self) -> str:
        return self.resource.logical_id

    @property
    def kind(self) -> ResourceKind:
        return self.resource.kind


@define(slots=True, frozen=True)
class ReconciledPlan:
    strategy: AdoptionStrategy
    entries: tuple = field(converter=tuple)
    observed: Mapping[str, ObservedResource] = field(
        factory=dict, converter=_freeze_mapping
    )

    def get(self, logical_id: str) -> ReconciledResource:
        for entry in self.entries:
            if entry.logical_id == logical_id:
                return entry
        raise KeyError(logical_id)

    def with_action(self, action: Action) -> list[ReconciledResource]:
        return [entry for entry in self.entries if entry.action is action]

    def changes(self) -> list[tuple[str, AttributeChange]]:
        return [(entry.logical_id, change) for entry in self.entries for change in entry.changes]

    @property
    def has_changes(self) -> bool:
        return any(entry.changes for entry in self.entries)

    def notes(self) -> list[tuple[str, str]]:
        return [(entry.logical_id, note) for entry in self.entries for note in entry.notes]

    def applied_state(self) -> dict[str, ObservedResource]:
        """Observed state once the engine has applied this plan.

        Non-ignored attributes converge to the desired values, ignored ones keep
        whatever the physical object currently has, and every resource becomes
        managed by the engine.
        """
        state = {}
        for entry in self.entries:
            current = self.observed.get(entry.logical_id)
            attributes = dict(current.attributes) if current else {}
            attributes.update(
                (name, value)
                for name, value in entry.resolved_attributes.items()
                if name not in entry.ignored_attributes or name not in attributes
            )
            physical_id = entry.physical_id or (current.physical_id if current else None)
            state[entry.logical_id] = ObservedResource(
                physical_id=physical_id, attributes=attributes, managed=True
            )
        return state
