"""Physical resource ids of the stacks already deployed in each environment.

The records are checked-in data captured from the existing deployments and are
used to bind logical resources to those objects instead of creating new ones.
"""
from types import MappingProxyType
from typing import Iterable, Mapping, Union

from adoption.exceptions import EnvironmentNotFoundError
from adoption.models import EnvironmentName, ResourceMapping


class EnvironmentCatalog:
    """Read-only lookup from environment name to its resource mapping."""

    def __init__(self, records: Mapping[EnvironmentName, ResourceMapping]) -> None:
        for name, mapping in records.items():
            missing = mapping.missing_fields()
            if missing:
                raise ValueError(
                    f"Resource mapping for {name.value} is missing: {', '.join(missing)}"
                )
        self._records = MappingProxyType(dict(records))

    def lookup(self, name: Union[EnvironmentName, str]) -> ResourceMapping:
        try:
            return self._records[EnvironmentName(name)]
        except (ValueError, KeyError):
            raise EnvironmentNotFoundError(str(getattr(name, "value", name))) from None

    def names(self) -> Iterable[str]:
        return tuple(name.value for name in self._records)

    def __contains__(self, name: object) -> bool:
        try:
            return EnvironmentName(name) in self._records
        except ValueError:
            return False


CATALOG = EnvironmentCatalog(
    {
        EnvironmentName.DEV: ResourceMapping(
            vpc="vpc-00670458d2ea5bd69",
            internet_gateway="igw-07ca318fd167fc1c7",
            public_subnet1="subnet-0cff59825efa397f7",
            public_subnet2="subnet-051a9fcd8fa3e1516",
            route_table1="rtb-04da744c73ff9a1a2",
            route_table2="rtb-09ebd0517ff96419e",
            route_table_association1="subnet-0cff59825efa397f7/rtb-04da744c73ff9a1a2",
            route_table_association2="subnet-051a9fcd8fa3e1516/rtb-09ebd0517ff96419e",
            ssh_security_group="sg-05c41c122aedbbe72",
            ec2_security_group="sg-0091589061fcd0d52",
            ec2_role="EC2-Dev-EC2serverEc2Role6775A3D4-IOYXJ5aBhapD",
            instance_profile="EC2-Dev-EC2InstanceInstanceProfile2CAA3051-QnRsJpERzkJc",
            asset_bucket="ec2-dev-ec2assetbucketc584b4ab-wdszsco2nzum",
            ec2_instance="i-084b07ea685e39d1d",
        ),
        EnvironmentName.STG: ResourceMapping(
            vpc="vpc-00cae33fe84d6baa2",
            internet_gateway="igw-024c88301d939f08d",
            public_subnet1="subnet-01997b2e2184c9fad",
            public_subnet2="subnet-06a48139e1f05ce35",
            route_table1="rtb-04e7d123eb2de4b6d",
            route_table2="rtb-0ae5b427533545225",
            route_table_association1="subnet-01997b2e2184c9fad/rtb-04e7d123eb2de4b6d",
            route_table_association2="subnet-06a48139e1f05ce35/rtb-0ae5b427533545225",
            ssh_security_group="sg-02b0bb5ee7969a4db",
            ec2_security_group="sg-0eb8e09255774711c",
            ec2_role="EC2-Stg-EC2serverEc2Role6775A3D4-oiMp0pW2CgA2",
            instance_profile="EC2-Stg-EC2InstanceInstanceProfile2CAA3051-bZA5FlPL6Zic",
            asset_bucket="ec2-stg-ec2assetbucketc584b4ab-ixd2lcpojxkq",
            ec2_instance="i-071acd3aea4369f21",
        ),
        EnvironmentName.PROD: ResourceMapping(
            vpc="vpc-02c9ccffda204bf71",
            internet_gateway="igw-0e067e07d15ed8807",
            public_subnet1="subnet-029297dbc45e7e0ea",
            public_subnet2="subnet-0015005d09a73a959",
            route_table1="rtb-0f72278af06c13275",
            route_table2="rtb-057494342af7aa014",
            route_table_association1="subnet-029297dbc45e7e0ea/rtb-0f72278af06c13275",
            route_table_association2="subnet-0015005d09a73a959/rtb-057494342af7aa014",
            ssh_security_group="sg-02402722b63caa77a",
            ec2_security_group="sg-0b6f8694e4d1e54cb",
            ec2_role="EC2-Prod-EC2serverEc2Role6775A3D4-VxbgrSLLUWZn",
            instance_profile="EC2-Prod-EC2InstanceInstanceProfile2CAA3051-pZIDwCyGFdJX",
            asset_bucket="ec2-prod-ec2assetbucketc584b4ab-kiw0zmzgmxfr",
            ec2_instance="i-0ec50891e8e8222ec",
        ),
    }
)


def lookup(name: Union[EnvironmentName, str]) -> ResourceMapping:
    return CATALOG.lookup(name)
