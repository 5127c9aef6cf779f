"""Error types raised while provisioning."""
from typing import Iterable, Optional


class ProvisionError(Exception):
    """Base class for every error the provisioner reports to its caller."""


class ConfigValidationError(ProvisionError):
    """Configuration was rejected before any phase ran."""

    def __init__(self, problems: Iterable[str]):
        self.problems = list(problems)
        super().__init__("invalid configuration: " + "; ".join(self.problems))


class PhaseError(ProvisionError):
    """A named phase failed; the original exception is kept as the cause."""

    def __init__(self, phase: str, cause: BaseException):
        self.phase = phase
        self.cause = cause
        super().__init__(f"phase '{phase}' failed: {cause}")


class ProvisionCancelled(ProvisionError):
    """The run was cancelled from outside, e.g. by Ctrl-C."""

    def __init__(self, phase: Optional[str] = None):
        self.phase = phase
        if phase:
            message = f"provisioning cancelled during phase '{phase}'"
        else:
            message = "provisioning cancelled"
        super().__init__(message)


class PhaseTimeout(TimeoutError):
    """A phase ran past its deadline."""


class ClusterError(RuntimeError):
    """A kubectl or helm command against the cluster failed."""

    def __init__(self, command: str, detail: str = ""):
        self.command = command
        self.detail = detail.strip()
        message = f"`{command}` failed"
        if self.detail:
            message += f": {self.detail}"
        super().__init__(message)


class IngressError(RuntimeError):
    """A DNS provider or UniFi controller request failed."""
