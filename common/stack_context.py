from attrs import define
from aws_cdk import Stack
from constructs import Construct


@define(slots=True, frozen=True)
class StackContext:
    stack_name: str

    @classmethod
    def of(cls, scope: Construct) -> "StackContext":
        return cls(stack_name=Stack.of(scope).stack_name)

    # ---------- naming ----------
    def build_tag_name(self, *path: str) -> str:
        """Build the Name tag for a resource from its logical path.

        Examples:
            - build_tag_name("VPC") -> EC2-Dev/VPC
            - build_tag_name("VPC", "ServerPublicSubnet1") -> EC2-Dev/VPC/ServerPublicSubnet1
        """
        return "/".join((self.stack_name, *path))

    def build_tags(self, *path: str) -> dict[str, str]:
        return {"Name": self.build_tag_name(*path)}
