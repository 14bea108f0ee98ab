"""Error types for paasctl.

Every failure the core reports is a PaasctlError subclass. Kubernetes client
exceptions are translated at the cluster boundary by map_api_exception().
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PaasctlError(Exception):
    """Base error class for paasctl errors."""

    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


@dataclass
class ValidationError(PaasctlError):
    """An option value has the wrong kind, or a required value is missing."""


@dataclass
class AlreadyPresentError(PaasctlError):
    """A deployment unit is already installed on the cluster."""


@dataclass
class NotOwnedError(PaasctlError):
    """A namespace is not labelled as created by paasctl; mutation refused."""


@dataclass
class WaitTimeoutError(PaasctlError):
    """A wait loop exceeded its timeout."""

    timeout: float = 0.0


@dataclass
class RemoteAPIError(PaasctlError):
    """A control-plane call or cluster tool invocation failed."""

    status: int | None = None


@dataclass
class NotFoundError(RemoteAPIError):
    """The control plane reported the object as missing (HTTP 404)."""

    status: int | None = 404


@dataclass
class AlreadyExistsError(RemoteAPIError):
    """The control plane refused a create because the object exists (HTTP 409)."""

    status: int | None = 409


def map_api_exception(error: Exception, action: str) -> RemoteAPIError:
    """Map a kubernetes client exception to a RemoteAPIError.

    Args:
        error: Exception raised by the kubernetes client (usually ApiException)
        action: Short description of the call, used in the message

    Returns:
        Appropriate RemoteAPIError subclass
    """
    status = getattr(error, "status", None)
    reason = getattr(error, "reason", None) or str(error)
    data = {"action": action, "reason": reason}

    if status == 404:
        return NotFoundError(message=f"{action}: not found", data=data)
    elif status == 409:
        return AlreadyExistsError(message=f"{action}: already exists", data=data)
    elif status:
        return RemoteAPIError(
            message=f"{action} failed: HTTP {status} {reason}", data=data, status=status
        )
    else:
        return RemoteAPIError(message=f"{action} failed: {reason}", data=data)
