import pytest

from adoption import sizing
from adoption.sizing import CpuArch, SizeClass

RESOLVE_CASES = [
    (CpuArch.ARM64, SizeClass.XLARGE, "m7g.xlarge"),
    (CpuArch.X86_64, SizeClass.LARGE, "m5.large"),
    (CpuArch.ARM64, SizeClass.XLARGE2, "m7g.xlarge2"),
    (CpuArch.X86_64, SizeClass.XLARGE4, "m5.xlarge4"),
    ("ARM64", "XLARGE", "m7g.xlarge"),
    ("X86_64", "xlarge2", "m5.xlarge2"),
]

# Unrecognized size classes fall back to LARGE
DEFAULT_CASES = [
    (CpuArch.ARM64, "HUGE", "m7g.large"),
    (CpuArch.ARM64, "", "m7g.large"),
    (CpuArch.X86_64, None, "m5.large"),
]


@pytest.mark.parametrize("cpu_arch,size_class,expected", RESOLVE_CASES)
def test_resolve_instance_type(cpu_arch, size_class, expected: str):
    assert sizing.resolve(cpu_arch, size_class) == expected


@pytest.mark.parametrize("cpu_arch,size_class,expected", DEFAULT_CASES)
def test_unrecognized_size_defaults_to_large(cpu_arch, size_class, expected: str):
    assert sizing.resolve(cpu_arch, size_class) == expected


def test_non_arm_architecture_uses_m5():
    assert sizing.instance_class("X86_64") == "m5"
    assert sizing.instance_class("anything-else") == "m5"


@pytest.mark.parametrize(
    "cpu_arch,expected", [(CpuArch.ARM64, "arm64"), (CpuArch.X86_64, "x86_64")]
)
def test_ami_architecture(cpu_arch: CpuArch, expected: str):
    assert sizing.ami_architecture(cpu_arch) == expected
