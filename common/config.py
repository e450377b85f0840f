import logging
import os
from typing import Optional

from attrs import define, field

import common.constants as constants
from adoption.exceptions import ConfigurationError
from adoption.models import AdoptionStrategy, EnvironmentName
from adoption.sizing import CpuArch, SizeClass, parse_size_class


def _environment_name(value) -> EnvironmentName:
    try:
        return EnvironmentName(value)
    except ValueError:
        raise ConfigurationError(f"Unknown environment: {value}") from None


def _cpu_arch(value) -> CpuArch:
    try:
        return CpuArch(str(getattr(value, "value", value)).strip().upper())
    except ValueError:
        raise ConfigurationError(
            f"CPU_TYPE must be one of {', '.join(c.value for c in CpuArch)}, got {value!r}"
        ) from None


def _log_level(value: str) -> str:
    level = str(value).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError(f"Unknown log level: {value!r}")
    return level


def parse_strategy(value: Optional[str]) -> AdoptionStrategy:
    if isinstance(value, AdoptionStrategy):
        return value
    if value is None or value == "":
        return AdoptionStrategy.CREATE_NEW
    for strategy in AdoptionStrategy:
        if str(value).strip().lower() in (strategy.value.lower(), strategy.name.lower()):
            return strategy
    raise ConfigurationError(
        f"strategy must be one of {', '.join(s.value for s in AdoptionStrategy)}, got {value!r}"
    )


@define(slots=True, frozen=True, kw_only=True)
class DeploymentConfig:
    """Configuration of one environment, fixed for the lifetime of the process."""

    environment: EnvironmentName = field(converter=_environment_name)
    account: Optional[str] = None
    region: str = constants.DEFAULT_REGION
    cpu_arch: CpuArch = field(default=CpuArch.ARM64, converter=_cpu_arch)
    size_class: SizeClass = field(default=SizeClass.LARGE, converter=parse_size_class)
    ssh_pub_key: str = constants.DEFAULT_SSH_PUB_KEY
    log_level: str = field(default=constants.DEFAULT_LOG_LEVEL, converter=_log_level)
    strategy: AdoptionStrategy = field(
        default=AdoptionStrategy.CREATE_NEW, converter=parse_strategy
    )

    @property
    def stack_name(self) -> str:
        return constants.STACK_NAMES[self.environment.value]

    @property
    def description(self) -> str:
        return constants.STACK_DESCRIPTIONS[self.environment.value]

    @classmethod
    def from_env(
        cls,
        environment: str,
        strategy: Optional[str] = None,
        environ: Optional[dict] = None,
    ) -> "DeploymentConfig":
        environ = os.environ if environ is None else environ
        name = _environment_name(environment)
        return cls(
            environment=name,
            account=environ.get("CDK_DEFAULT_ACCOUNT"),
            region=environ.get("CDK_DEFAULT_REGION") or constants.DEFAULT_REGION,
            cpu_arch=environ.get("CPU_TYPE") or constants.DEFAULT_CPU_TYPE,
            size_class=constants.INSTANCE_SIZES[name.value],
            ssh_pub_key=environ.get("SSH_PUB_KEY") or constants.DEFAULT_SSH_PUB_KEY,
            log_level=environ.get("LOG_LEVEL") or constants.DEFAULT_LOG_LEVEL,
            strategy=strategy,
        )
