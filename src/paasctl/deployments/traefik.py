"""Traefik ingress controller.

Installed first: its load balancer address is what the system domain is
derived from when the user doesn't supply one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..kubernetes.cluster import Cluster
from ..kubernetes.deployment import Deployment
from ..kubernetes.options import ScopedOptions
from ..kubernetes.tools import Helm
from ..termui import UI

TRAEFIK_DEPLOYMENT_ID = "traefik"
TRAEFIK_NAMESPACE = "traefik"
TRAEFIK_SERVICE_NAME = "traefik"
TRAEFIK_CHART_VERSION = "10.3.4"
TRAEFIK_REPO = "https://helm.traefik.io/traefik"
TRAEFIK_SELECTOR = "app.kubernetes.io/name=traefik"


@dataclass
class TraefikConfig:
    """Options for the Traefik deployment."""

    load_balancer_ip: str = ""

    @classmethod
    def from_options(cls, options: ScopedOptions) -> TraefikConfig:
        return cls(load_balancer_ip=options.value("load_balancer_ip"))


class Traefik(Deployment):
    """Ingress controller for platform services and application routes."""

    def id(self) -> str:
        return TRAEFIK_DEPLOYMENT_ID

    def describe(self) -> str:
        return f"Traefik ingress controller, chart version {TRAEFIK_CHART_VERSION}"

    def get_version(self) -> str:
        return TRAEFIK_CHART_VERSION

    def _values(self, cluster: Cluster, config: TraefikConfig) -> dict[str, Any]:
        service_spec: dict[str, Any] = {}
        if config.load_balancer_ip:
            service_spec["loadBalancerIP"] = config.load_balancer_ip
        # Local clusters have no load balancer provider; expose on the node IPs
        external_ips = cluster.platform.external_ips()
        if external_ips:
            service_spec["externalIPs"] = external_ips

        values: dict[str, Any] = {
            "ingressClass": {"enabled": True, "isDefaultClass": True},
            "ports": {"websecure": {"tls": {"enabled": True}}},
        }
        if service_spec:
            values["service"] = {"spec": service_spec}
        return values

    def deploy(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        self.ensure_absent(cluster, TRAEFIK_NAMESPACE)
        config = TraefikConfig.from_options(options)

        ui.note("Deploying Traefik...")
        cluster.create_namespace(TRAEFIK_NAMESPACE)
        Helm(cluster.kubeconfig).install(
            "traefik",
            "traefik",
            TRAEFIK_NAMESPACE,
            repo=TRAEFIK_REPO,
            version=TRAEFIK_CHART_VERSION,
            values=self._values(cluster, config),
        )

        with ui.progress("Waiting for Traefik to be running"):
            cluster.wait_until_pod_by_selector_exist(TRAEFIK_NAMESPACE, TRAEFIK_SELECTOR, self.timeout)
            cluster.wait_for_pod_by_selector_running(TRAEFIK_NAMESPACE, TRAEFIK_SELECTOR, self.timeout)

        ui.success("Traefik deployed")

    def upgrade(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        if not cluster.namespace_exists_and_owned(TRAEFIK_NAMESPACE):
            ui.exclamation("Traefik is not installed by paasctl, skipping upgrade")
            return

        ui.note("Upgrading Traefik...")
        Helm(cluster.kubeconfig).upgrade(
            "traefik",
            "traefik",
            TRAEFIK_NAMESPACE,
            repo=TRAEFIK_REPO,
            version=TRAEFIK_CHART_VERSION,
            values=self._values(cluster, TraefikConfig.from_options(options)),
        )
        with ui.progress("Waiting for Traefik to be running"):
            cluster.wait_for_pod_by_selector_running(TRAEFIK_NAMESPACE, TRAEFIK_SELECTOR, self.timeout)
        ui.success("Traefik upgraded")

    def delete(self, cluster: Cluster, ui: UI) -> None:
        ui.note("Removing Traefik...")
        if not cluster.namespace_exists_and_owned(TRAEFIK_NAMESPACE):
            ui.exclamation("Skipping Traefik because namespace either doesn't exist or not owned by paasctl")
            return

        Helm(cluster.kubeconfig).uninstall("traefik", TRAEFIK_NAMESPACE)
        self.delete_owned_namespace(cluster, ui, TRAEFIK_NAMESPACE)
        ui.success("Traefik removed")
