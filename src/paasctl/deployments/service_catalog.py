"""Kubernetes service catalog, the broker for provisioning backing services."""

from __future__ import annotations

from ..kubernetes.cluster import Cluster
from ..kubernetes.deployment import Deployment
from ..kubernetes.options import ScopedOptions
from ..kubernetes.tools import Helm
from ..termui import UI

SERVICE_CATALOG_DEPLOYMENT_ID = "service-catalog"
SERVICE_CATALOG_NAMESPACE = "catalog"
SERVICE_CATALOG_CHART_VERSION = "0.3.1"
SERVICE_CATALOG_REPO = "https://kubernetes-sigs.github.io/service-catalog"
SERVICE_CATALOG_SELECTORS = (
    "app=catalog-catalog-webhook",
    "app=catalog-catalog-controller-manager",
)


class ServiceCatalog(Deployment):
    def id(self) -> str:
        return SERVICE_CATALOG_DEPLOYMENT_ID

    def describe(self) -> str:
        return f"Service catalog version: {SERVICE_CATALOG_CHART_VERSION}"

    def get_version(self) -> str:
        return SERVICE_CATALOG_CHART_VERSION

    def deploy(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        self.ensure_absent(cluster, SERVICE_CATALOG_NAMESPACE)

        ui.note("Deploying ServiceCatalog...")
        cluster.create_namespace(SERVICE_CATALOG_NAMESPACE)
        Helm(cluster.kubeconfig).install(
            "catalog",
            "catalog",
            SERVICE_CATALOG_NAMESPACE,
            repo=SERVICE_CATALOG_REPO,
            version=SERVICE_CATALOG_CHART_VERSION,
        )

        with ui.progress("Waiting for ServiceCatalog to be running"):
            for selector in SERVICE_CATALOG_SELECTORS:
                cluster.wait_until_pod_by_selector_exist(SERVICE_CATALOG_NAMESPACE, selector, self.timeout)
                cluster.wait_for_pod_by_selector_running(SERVICE_CATALOG_NAMESPACE, selector, self.timeout)

        ui.success("ServiceCatalog deployed")

    def delete(self, cluster: Cluster, ui: UI) -> None:
        ui.note("Removing ServiceCatalog...")
        if not cluster.namespace_exists_and_owned(SERVICE_CATALOG_NAMESPACE):
            ui.exclamation(
                "Skipping ServiceCatalog because namespace either doesn't exist or not owned by paasctl"
            )
            return

        Helm(cluster.kubeconfig).uninstall("catalog", SERVICE_CATALOG_NAMESPACE)
        self.delete_owned_namespace(cluster, ui, SERVICE_CATALOG_NAMESPACE)
        ui.success("ServiceCatalog removed")
