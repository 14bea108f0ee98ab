"""Installation orchestrator.

Runs deployment units one at a time, in the order given:

    installer = Installer(cluster, ui, options)
    installer.install(default_deployments())

The first unit installs the ingress controller; once it is up, a missing
system domain is derived from its load balancer address before any later
unit (which may need the domain) runs. The first failing unit stops the run
and its error is re-raised unchanged. Nothing is rolled back: installing
again reports the units already present.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from structlog.contextvars import bound_contextvars

from . import durations
from .errors import RemoteAPIError, WaitTimeoutError
from .kubernetes.cluster import Cluster
from .kubernetes.deployment import Deployment
from .kubernetes.options import SYSTEM_DOMAIN, InstallationOptions
from .kubernetes.wait import poll_until
from .shared.logging import get_logger
from .termui import UI

logger = get_logger(__name__)

LOAD_BALANCER_SERVICE = "traefik"
# Wildcard DNS service resolving <ip>.omg.howdoi.website to <ip>
MAGIC_DOMAIN_SUFFIX = "omg.howdoi.website"


def magic_domain(ip: str) -> str:
    return f"{ip}.{MAGIC_DOMAIN_SUFFIX}"


class Installer:
    """Install, upgrade and remove a sequence of deployment units."""

    def __init__(self, cluster: Cluster, ui: UI, options: InstallationOptions):
        """Initialize installer.

        Args:
            cluster: Cluster to install into.
            ui: Progress output.
            options: Fully populated installation options.
        """
        self.cluster = cluster
        self.ui = ui
        self.options = options

    @property
    def system_domain(self) -> str:
        if SYSTEM_DOMAIN not in self.options:
            return ""
        return self.options.value(SYSTEM_DOMAIN)

    def install(self, units: Sequence[Deployment]) -> None:
        """Deploy units in order, resolving the system domain after the first.

        Raises:
            PaasctlError: The first unit error, unchanged.
        """
        logger.info("install start", units=[unit.id() for unit in units])
        self.ui.note("paasctl installing...")
        self.show_install_configuration()

        for index, unit in enumerate(units):
            self.install_deployment(unit)
            if index == 0:
                self.fill_in_missing_system_domain()

        self.ui.show_values("paasctl installed", {"System domain": self.system_domain or "(none)"})
        logger.info("install done", system_domain=self.system_domain)

    def uninstall(self, units: Sequence[Deployment]) -> None:
        """Delete units in reverse install order, stopping at the first error."""
        logger.info("uninstall start", units=[unit.id() for unit in units])
        self.ui.note("paasctl uninstalling...")
        for unit in reversed(units):
            self.uninstall_deployment(unit)
        self.ui.success("paasctl uninstalled")
        logger.info("uninstall done")

    def upgrade(self, units: Sequence[Deployment]) -> None:
        logger.info("upgrade start", units=[unit.id() for unit in units])
        self.ui.note("paasctl upgrading...")
        for unit in units:
            with bound_contextvars(deployment=unit.id()):
                logger.info("upgrade")
                unit.upgrade(self.cluster, self.ui, self.options.for_deployment(unit.id()))
        self.ui.success("paasctl upgraded")

    def backup(self, units: Sequence[Deployment], target_dir: Path) -> None:
        """Let each unit save its state under target_dir/<unit id>."""
        target_dir.mkdir(parents=True, exist_ok=True)
        for unit in units:
            with bound_contextvars(deployment=unit.id()):
                logger.info("backup", target=str(target_dir))
                unit.backup(self.cluster, self.ui, target_dir / unit.id())
        self.ui.success(f"Backup written to {target_dir}")

    def restore(self, units: Sequence[Deployment], source_dir: Path) -> None:
        """Restore what backup() saved, unit by unit in install order."""
        for unit in units:
            with bound_contextvars(deployment=unit.id()):
                logger.info("restore", source=str(source_dir))
                unit.restore(self.cluster, self.ui, source_dir / unit.id())
        self.ui.success(f"Restored from {source_dir}")

    def install_deployment(self, unit: Deployment) -> None:
        with bound_contextvars(deployment=unit.id()):
            logger.info("deploy")
            unit.deploy(self.cluster, self.ui, self.options.for_deployment(unit.id()))

    def uninstall_deployment(self, unit: Deployment) -> None:
        with bound_contextvars(deployment=unit.id()):
            logger.info("remove")
            unit.delete(self.cluster, self.ui)

    def show_install_configuration(self) -> None:
        self.ui.show_values("Configuration...", self.options.as_dict(mask_secrets=True))

    def fill_in_missing_system_domain(self) -> None:
        """Derive the system domain from the load balancer address if it is unset.

        When no address shows up in time the domain stays empty and a warning
        is shown; units that need it fail with a ValidationError.
        """
        if SYSTEM_DOMAIN not in self.options or self.system_domain:
            return

        found: list[str] = []

        def address_assigned() -> bool:
            try:
                found.append(self.cluster.find_load_balancer_ip(LOAD_BALANCER_SERVICE))
            except RemoteAPIError as e:
                logger.debug("no load balancer address yet", reason=str(e))
                return False
            return True

        try:
            with self.ui.progress(f"Waiting for LoadBalancer IP on {LOAD_BALANCER_SERVICE} service"):
                poll_until(
                    durations.poll_interval(),
                    durations.to_system_domain(),
                    address_assigned,
                    description=f"{LOAD_BALANCER_SERVICE} load balancer address",
                )
        except WaitTimeoutError:
            self.ui.exclamation(
                f"Timed out waiting for LoadBalancer IP on {LOAD_BALANCER_SERVICE} service. "
                "Ensure your kubernetes platform can provision LoadBalancer IP addresses, "
                "or pass --system-domain"
            )
            logger.warning("system domain unresolved")
            return

        domain = magic_domain(found[-1])
        self.options.set(SYSTEM_DOMAIN, domain)
        self.ui.success(f"Created system_domain: {domain}")
        logger.info("system domain resolved", system_domain=domain)
