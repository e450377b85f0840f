class AdoptionError(Exception):
    """Base class for errors raised while planning or reconciling a stack."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(AdoptionError):
    """Raised when deployment configuration cannot be interpreted."""


class EnvironmentNotFoundError(AdoptionError, LookupError):
    """Raised when an environment has no record in the catalog."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No resource mappings found for environment: {name}")


class PlanError(AdoptionError):
    """Raised when a resource is added to a plan with undeclared dependencies."""


class CompositeIdError(AdoptionError):
    """Raised when a composite physical id does not match its declared endpoints."""


class MissingOutputError(AdoptionError, KeyError):
    """Raised when an output cannot be formatted because an upstream value is missing."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Missing upstream value for output: {name}")

    def __str__(self) -> str:
        return self.message


class StateReadError(AdoptionError):
    """Raised when the current state of a physical resource cannot be read."""
