"""Create-or-adopt reconciliation of a logical plan against existing resources.

For every logical resource the reconciler decides whether it is created fresh
or bound to a physical object listed in the environment's resource mapping.
Bound resources are only diffed on attributes outside their ignore set, so an
adopted resource can never be replaced because of an ignored attribute.
"""
from types import MappingProxyType
from typing import Any, Mapping, Optional

from adoption.exceptions import CompositeIdError
from adoption.models import (
    Action,
    AdoptionPlan,
    AdoptionStrategy,
    AttributeChange,
    LogicalResource,
    ObservedResource,
    ReconciledPlan,
    ReconciledResource,
    Ref,
    ResourceKind,
    ResourceMapping,
    iter_refs,
)
from common.logger import logger

# Attributes excluded from drift detection once a resource is adopted.
ADOPTION_IGNORES = MappingProxyType(
    {
        ResourceKind.SECURITY_GROUP: frozenset({"ingress", "egress"}),
        ResourceKind.INSTANCE: frozenset({"user_data", "image_id"}),
    }
)

UNORDERED_ATTRIBUTES = frozenset(
    {"security_group_ids", "ingress", "egress", "managed_policy_arns"}
)
SUBSET_ATTRIBUTES = frozenset({"tags"})

_NOT_OBSERVED = object()


def _normalize(value: Any) -> Any:
    if isinstance(value, (list, tuple, set, frozenset)):
        return frozenset(value)
    return value


def is_equivalent(name: str, desired: Any, current: Any) -> bool:
    if name in SUBSET_ATTRIBUTES and isinstance(desired, Mapping) and isinstance(current, Mapping):
        return all(current.get(key) == value for key, value in desired.items())
    if name in UNORDERED_ATTRIBUTES:
        return _normalize(desired) == _normalize(current)
    return desired == current


def diff_attributes(
    desired: Mapping[str, Any],
    current: Mapping[str, Any],
    ignore: frozenset = frozenset(),
) -> list[AttributeChange]:
    """Compare desired against current attributes, skipping ignored ones.

    An attribute the current state does not report is not compared, unless the
    desired value still holds an unresolved reference, which is only known
    after apply and always counts as a change.
    """
    changes = []
    for name, value in desired.items():
        if name in ignore:
            continue
        actual = current.get(name, _NOT_OBSERVED)
        if any(True for _ in iter_refs(value)):
            changes.append(AttributeChange(name, value, None if actual is _NOT_OBSERVED else actual))
            continue
        if actual is _NOT_OBSERVED:
            continue
        if not is_equivalent(name, value, actual):
            changes.append(AttributeChange(name, value, actual))
    return changes


class AdoptionReconciler:
    def __init__(self, strategy: AdoptionStrategy, mapping: ResourceMapping) -> None:
        self.strategy = AdoptionStrategy(strategy)
        self.mapping = mapping

    @property
    def adopting(self) -> bool:
        return self.strategy is AdoptionStrategy.ADOPT_EXISTING

    def reconcile(
        self,
        plan: AdoptionPlan,
        observed: Optional[Mapping[str, ObservedResource]] = None,
    ) -> ReconciledPlan:
        observed = dict(observed or {})
        bound: dict[str, str] = {}
        entries = []
        for resource in plan.dependency_order():
            entry = self._reconcile_resource(resource, bound, observed.get(resource.logical_id))
            if entry.physical_id:
                bound[resource.logical_id] = entry.physical_id
            entries.append(entry)

        result = ReconciledPlan(strategy=self.strategy, entries=entries, observed=observed)
        logger.info(
            "Reconciled plan",
            extra={
                "strategy": self.strategy.value,
                "created_count": len(result.with_action(Action.CREATE)),
                "adopted_count": len(result.with_action(Action.ADOPT)),
                "change_count": len(result.changes()),
            },
        )
        return result

    # ---------- per resource ----------

    def _reconcile_resource(
        self,
        resource: LogicalResource,
        bound: Mapping[str, str],
        current: Optional[ObservedResource],
    ) -> ReconciledResource:
        if self.adopting and not resource.bindable:
            return self._adopt_implicitly(resource, bound, current)

        physical_id = self.mapping.bound_id(resource.mapping_key) if self.adopting else None
        if not physical_id:
            return self._create(resource, bound)

        if resource.kind is ResourceKind.ROUTE_TABLE_ASSOCIATION:
            self._validate_association(resource, physical_id, bound)
        return self._adopt(resource, physical_id, bound, current)

    def _create(self, resource: LogicalResource, bound: Mapping[str, str]) -> ReconciledResource:
        notes = []
        if resource.ignore_attributes:
            notes.append(
                "Rendered at create time, not enforced afterwards: "
                + ", ".join(sorted(resource.ignore_attributes))
            )
        logger.debug("Creating resource", extra={"logical_id": resource.logical_id})
        return ReconciledResource(
            resource=resource,
            action=Action.CREATE,
            rendered_attributes=resource.attributes,
            resolved_attributes=self._resolve_all(resource.attributes, bound),
            ignored_attributes=resource.ignore_attributes,
            notes=notes,
        )

    def _adopt(
        self,
        resource: LogicalResource,
        physical_id: str,
        bound: Mapping[str, str],
        current: Optional[ObservedResource],
    ) -> ReconciledResource:
        ignored = self.ignored_attributes(resource)
        resolved = self._resolve_all(resource.attributes, bound)
        rendered = {
            name: value for name, value in resource.attributes.items() if name not in ignored
        }
        if resource.kind is ResourceKind.INSTANCE and self.mapping.ami_id:
            rendered["image_id"] = self.mapping.ami_id

        notes = []
        changes: list[AttributeChange] = []
        if current is None:
            notes.append("Current state not observed, drift not evaluated")
        else:
            changes = diff_attributes(resolved, current.attributes, ignored)

        logger.info(
            "Adopting existing resource",
            extra={"logical_id": resource.logical_id, "physical_id": physical_id},
        )
        for change in changes:
            logger.warning(
                "Drift on adopted resource",
                extra={
                    "logical_id": resource.logical_id,
                    "attribute": change.attribute,
                    "desired": repr(change.desired),
                    "current": repr(change.current),
                },
            )
        return ReconciledResource(
            resource=resource,
            action=Action.ADOPT,
            physical_id=physical_id,
            rendered_attributes=rendered,
            resolved_attributes=resolved,
            ignored_attributes=ignored,
            changes=changes,
            notes=notes,
        )

    def _adopt_implicitly(
        self,
        resource: LogicalResource,
        bound: Mapping[str, str],
        current: Optional[ObservedResource],
    ) -> ReconciledResource:
        """Adopt a resource that can only be bound through its owner."""
        resolved = self._resolve_all(resource.attributes, bound)
        owner = self._owner(resource, bound)
        notes = []
        changes: list[AttributeChange] = []
        if current is None:
            notes.append(f"Declared and adopted implicitly via {owner}, current state not observed")
        else:
            changes = diff_attributes(resolved, current.attributes, resource.ignore_attributes)
            if not changes and not current.managed:
                notes.append(f"Adopted implicitly via {owner}, converges on the next run")
                logger.info(
                    "Route adopted implicitly",
                    extra={"logical_id": resource.logical_id, "owner": owner},
                )
        return ReconciledResource(
            resource=resource,
            action=Action.ADOPT,
            rendered_attributes=resource.attributes,
            resolved_attributes=resolved,
            ignored_attributes=resource.ignore_attributes,
            changes=changes,
            notes=notes,
            implicit=True,
        )

    # ---------- helpers ----------

    def ignored_attributes(self, resource: LogicalResource) -> frozenset:
        extra = ADOPTION_IGNORES.get(resource.kind, frozenset()) if self.adopting else frozenset()
        return resource.ignore_attributes | extra

    def _validate_association(
        self, resource: LogicalResource, physical_id: str, bound: Mapping[str, str]
    ) -> None:
        parts = physical_id.split("/")
        if len(parts) != 2 or not all(parts):
            raise CompositeIdError(
                f"{resource.logical_id}: association id {physical_id!r} "
                "is not of the form 'subnet-id/rtb-id'"
            )
        expected = (
            self._resolve(resource.attributes["subnet_id"], bound),
            self._resolve(resource.attributes["route_table_id"], bound),
        )
        if tuple(parts) != expected:
            raise CompositeIdError(
                f"{resource.logical_id}: association id {physical_id!r} does not match "
                f"declared endpoints {expected[0]!r} and {expected[1]!r}"
            )

    @staticmethod
    def _owner(resource: LogicalResource, bound: Mapping[str, str]) -> str:
        owner = resource.attributes.get("route_table_id")
        if isinstance(owner, Ref):
            return bound.get(owner.logical_id, owner.logical_id)
        return str(owner)

    @staticmethod
    def _resolve(value: Any, bound: Mapping[str, str]) -> Any:
        if isinstance(value, Ref):
            return bound.get(value.logical_id, value)
        if isinstance(value, tuple):
            return tuple(AdoptionReconciler._resolve(item, bound) for item in value)
        if isinstance(value, list):
            return [AdoptionReconciler._resolve(item, bound) for item in value]
        return value

    def _resolve_all(self, attributes: Mapping[str, Any], bound: Mapping[str, str]) -> dict:
        return {name: self._resolve(value, bound) for name, value in attributes.items()}
