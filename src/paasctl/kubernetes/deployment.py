"""Lifecycle contract shared by every installable platform component.

A deployment never remembers whether it is installed: each call looks at the
cluster (usually for the component's namespace) before acting. Namespaces
are only removed when they carry the paasctl ownership label.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from .. import durations
from ..errors import AlreadyPresentError
from ..shared.logging import get_logger
from ..termui import UI
from .cluster import Cluster
from .options import ScopedOptions

logger = get_logger(__name__)


class Deployment(ABC):
    """An independently installable platform component."""

    def __init__(self, timeout: float | None = None):
        """Initialize deployment.

        Args:
            timeout: Bound for each wait during deploy/delete
                (default: the scaled deployment timeout).
        """
        self.timeout = timeout if timeout is not None else durations.to_deployment()

    @abstractmethod
    def id(self) -> str:
        """Stable identifier, also the prefix of the unit's option names."""

    @abstractmethod
    def describe(self) -> str:
        """One line human-readable description."""

    @abstractmethod
    def get_version(self) -> str:
        """Version of the component this unit installs."""

    @abstractmethod
    def deploy(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        """Install the component and wait for it to be ready.

        Raises:
            AlreadyPresentError: The component is already installed.
        """

    @abstractmethod
    def delete(self, cluster: Cluster, ui: UI) -> None:
        """Remove the component. Not installed, or not ours, is a no-op."""

    def upgrade(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        """Apply updated manifests to an existing installation.

        Units without upgrade support leave the installation unchanged.
        """
        ui.exclamation(f"Upgrading {self.id()} is not supported, leaving it unchanged")

    def backup(self, cluster: Cluster, ui: UI, target_dir: Path) -> None:
        """Save component state into target_dir. Stateless units do nothing."""

    def restore(self, cluster: Cluster, ui: UI, source_dir: Path) -> None:
        """Recover component state saved by backup(). Stateless units do nothing."""

    # ── Helpers for subclasses ──

    def ensure_absent(self, cluster: Cluster, namespace: str) -> None:
        """Raise AlreadyPresentError if the unit's namespace exists."""
        if cluster.namespace_exists(namespace):
            raise AlreadyPresentError(
                message=f"Namespace {namespace} present already",
                data={"deployment": self.id(), "namespace": namespace},
            )

    def delete_owned_namespace(self, cluster: Cluster, ui: UI, namespace: str) -> bool:
        """Delete a namespace paasctl created and wait until it is gone.

        Returns:
            False if the namespace was skipped (absent or not owned).
        """
        if not cluster.namespace_exists_and_owned(namespace):
            ui.exclamation(
                f"Skipping namespace {namespace}: it either doesn't exist or is not owned by paasctl"
            )
            logger.info("skip namespace", deployment=self.id(), namespace=namespace)
            return False

        with ui.progress(f"Deleting namespace {namespace}"):
            cluster.delete_namespace(namespace)
            cluster.wait_for_namespace_gone(namespace, durations.to_namespace_deletion())
        logger.info("namespace deleted", deployment=self.id(), namespace=namespace)
        return True
