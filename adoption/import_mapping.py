"""Resource mapping handed to ``cdk import`` to bind adopted resources.

CloudFormation only binds a template resource to an existing physical object
through an import operation. The mapping pairs every adopted logical id with
the identifier property CloudFormation expects for its resource type.
"""
import json
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from adoption.models import Action, ReconciledPlan, ResourceKind
from common import constants
from common.logger import logger

# Identifier property CloudFormation imports each resource type by
IMPORT_IDENTIFIERS = MappingProxyType(
    {
        ResourceKind.VPC: "VpcId",
        ResourceKind.INTERNET_GATEWAY: "InternetGatewayId",
        ResourceKind.SUBNET: "SubnetId",
        ResourceKind.ROUTE_TABLE: "RouteTableId",
        ResourceKind.ROUTE_TABLE_ASSOCIATION: "Id",
        ResourceKind.SECURITY_GROUP: "GroupId",
        ResourceKind.IAM_ROLE: "RoleName",
        ResourceKind.INSTANCE_PROFILE: "InstanceProfileName",
        ResourceKind.BUCKET: "BucketName",
        ResourceKind.INSTANCE: "InstanceId",
    }
)


def build_import_mapping(
    reconciled: ReconciledPlan,
    association_ids: Optional[Mapping[str, str]] = None,
) -> dict[str, dict[str, str]]:
    """Map adopted logical ids to their import identifiers.

    Associations are catalogued as ``subnet-id/rtb-id`` but imported by their
    ``rtbassoc-`` id, which has to be looked up in the live account first. An
    association without a looked-up id is left out and created on deploy.
    Routes have no physical id and are never imported.
    """
    association_ids = association_ids or {}
    mapping = {}
    for entry in reconciled.with_action(Action.ADOPT):
        identifier = IMPORT_IDENTIFIERS.get(entry.kind)
        if identifier is None or not entry.physical_id:
            continue
        physical_id = entry.physical_id
        if entry.kind is ResourceKind.ROUTE_TABLE_ASSOCIATION:
            physical_id = association_ids.get(entry.logical_id)
            if not physical_id:
                logger.warning(
                    "Association id not resolved, left out of the import mapping",
                    extra={"logical_id": entry.logical_id, "composite_id": entry.physical_id},
                )
                continue
        mapping[entry.logical_id] = {identifier: physical_id}
    return mapping


def import_mapping_path(directory: str, stack_name: str) -> Path:
    return Path(directory) / f"{stack_name}{constants.IMPORT_MAPPING_SUFFIX}"


def write_import_mapping(
    mapping: Mapping[str, Mapping[str, str]], directory: str, stack_name: str
) -> Path:
    path = import_mapping_path(directory, stack_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(mapping, indent=2, sort_keys=True) + "\n")
    logger.info(
        "Wrote import mapping",
        extra={"stack": stack_name, "path": str(path), "resource_count": len(mapping)},
    )
    return path
