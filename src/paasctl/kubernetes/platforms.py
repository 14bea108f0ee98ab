"""Kubernetes platform detection.

Known distributions are tried in a fixed priority order; the first one that
recognizes the cluster's nodes wins. Clusters nobody recognizes get the
generic platform, so a Cluster always has one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .cluster import Cluster


class Platform(ABC):
    """A Kubernetes distribution and the facts paasctl needs about it."""

    name: str = ""
    # Node address type that is reachable from outside the cluster
    address_type: str = "ExternalIP"

    def __init__(self) -> None:
        self._external_ips: list[str] = []

    @abstractmethod
    def detect(self, cluster: Cluster) -> bool:
        """Return True if the cluster runs this distribution. Read-only."""

    def load(self, cluster: Cluster) -> None:
        """Cache the addresses under which the nodes can be reached."""
        ips = []
        for node in cluster.list_nodes():
            for address in node.status.addresses or []:
                if address.type == self.address_type and address.address not in ips:
                    ips.append(address.address)
        self._external_ips = ips

    def external_ips(self) -> list[str]:
        return list(self._external_ips)

    def describe(self) -> str:
        ips = ", ".join(self._external_ips) or "none"
        return f"Kubernetes platform: {self.name} (external IPs: {ips})"

    def __str__(self) -> str:
        return self.name


def _labels(node: Any) -> dict[str, str]:
    return node.metadata.labels or {}


class Kind(Platform):
    name = "kind"
    address_type = "InternalIP"

    def detect(self, cluster: Cluster) -> bool:
        return any(
            (node.spec.provider_id or "").startswith("kind://") for node in cluster.list_nodes()
        )


class K3s(Platform):
    name = "k3s"
    address_type = "InternalIP"

    def detect(self, cluster: Cluster) -> bool:
        for node in cluster.list_nodes():
            if _labels(node).get("node.kubernetes.io/instance-type") == "k3s":
                return True
            if "+k3s" in (node.status.node_info.kubelet_version or ""):
                return True
        return False


class IBM(Platform):
    name = "ibm"

    def detect(self, cluster: Cluster) -> bool:
        return any(
            key.startswith("ibm-cloud.kubernetes.io/")
            for node in cluster.list_nodes()
            for key in _labels(node)
        )


class Minikube(Platform):
    name = "minikube"
    address_type = "InternalIP"

    def detect(self, cluster: Cluster) -> bool:
        return any("minikube.k8s.io/name" in _labels(node) for node in cluster.list_nodes())


class Generic(Platform):
    name = "generic"

    def detect(self, cluster: Cluster) -> bool:
        return True


# Priority order; Generic is the fallback and is not listed
SUPPORTED_PLATFORMS: tuple[type[Platform], ...] = (Kind, K3s, IBM, Minikube)


def detect_platform(cluster: Cluster) -> Platform:
    """Pick and load the first matching platform, or the generic one."""
    for platform_class in SUPPORTED_PLATFORMS:
        platform = platform_class()
        if platform.detect(cluster):
            platform.load(cluster)
            return platform

    platform = Generic()
    platform.load(cluster)
    return platform
