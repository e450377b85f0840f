"""Instance sizing: abstract cpu architecture and size class to an EC2 type."""
from enum import Enum
from typing import Union

import common.constants as constants


class CpuArch(str, Enum):
    ARM64 = "ARM64"
    X86_64 = "X86_64"


class SizeClass(str, Enum):
    LARGE = "LARGE"
    XLARGE = "XLARGE"
    XLARGE2 = "XLARGE2"
    XLARGE4 = "XLARGE4"


def parse_size_class(size_class: Union[SizeClass, str, None]) -> SizeClass:
    """Return the matching size class, falling back to LARGE when unrecognized."""
    if isinstance(size_class, SizeClass):
        return size_class
    try:
        return SizeClass[str(size_class).strip().upper()]
    except KeyError:
        return SizeClass.LARGE


def is_arm(cpu_arch: Union[CpuArch, str]) -> bool:
    return str(getattr(cpu_arch, "value", cpu_arch)).strip().upper() == CpuArch.ARM64.value


def instance_class(cpu_arch: Union[CpuArch, str]) -> str:
    return constants.INSTANCE_CLASS_ARM if is_arm(cpu_arch) else constants.INSTANCE_CLASS_X86


def resolve(cpu_arch: Union[CpuArch, str], size_class: Union[SizeClass, str, None]) -> str:
    """Resolve an instance type string.

    Examples:
        - resolve("ARM64", "XLARGE") -> m7g.xlarge
        - resolve("X86_64", "LARGE") -> m5.large
        - resolve("ARM64", "HUGE") -> m7g.large
    """
    size = parse_size_class(size_class)
    return f"{instance_class(cpu_arch)}.{size.value.lower()}"


def ami_architecture(cpu_arch: Union[CpuArch, str]) -> str:
    """Architecture value used by the Amazon Linux image filter."""
    return "arm64" if is_arm(cpu_arch) else "x86_64"
