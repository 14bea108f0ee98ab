"""Quarks secret operator.

Generates passwords and certificates from QuarksSecret resources. Staged
applications on a synthesized system domain get their TLS certificate from
it, signed by the workload namespace's `ca-cert` authority.
"""

from __future__ import annotations

from ..kubernetes.cluster import Cluster
from ..kubernetes.deployment import Deployment
from ..kubernetes.options import ScopedOptions
from ..kubernetes.tools import Helm
from ..termui import UI

QUARKS_DEPLOYMENT_ID = "quarks"
QUARKS_NAMESPACE = "quarks"
QUARKS_CHART_VERSION = "1.0.760"
QUARKS_REPO = "https://cloudfoundry-incubator.github.io/quarks-helm/"
QUARKS_SELECTOR = "name=quarks-secret"
# Namespaces carrying this label/value are watched by the operator
QUARKS_MONITORED_LABEL = "quarks.cloudfoundry.org/monitored"
QUARKS_MONITORED_ID = "quarks-secret"


class Quarks(Deployment):
    def id(self) -> str:
        return QUARKS_DEPLOYMENT_ID

    def describe(self) -> str:
        return f"Quarks secret operator, chart version {QUARKS_CHART_VERSION}"

    def get_version(self) -> str:
        return QUARKS_CHART_VERSION

    def deploy(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        self.ensure_absent(cluster, QUARKS_NAMESPACE)

        ui.note("Deploying Quarks...")
        cluster.create_namespace(QUARKS_NAMESPACE)
        Helm(cluster.kubeconfig).install(
            "quarks-secret",
            "quarks-secret",
            QUARKS_NAMESPACE,
            repo=QUARKS_REPO,
            version=QUARKS_CHART_VERSION,
            values={"global": {"monitoredID": QUARKS_MONITORED_ID}},
        )

        with ui.progress("Waiting for Quarks to be running"):
            cluster.wait_until_pod_by_selector_exist(QUARKS_NAMESPACE, QUARKS_SELECTOR, self.timeout)
            cluster.wait_for_pod_by_selector_running(QUARKS_NAMESPACE, QUARKS_SELECTOR, self.timeout)

        ui.success("Quarks deployed")

    def delete(self, cluster: Cluster, ui: UI) -> None:
        ui.note("Removing Quarks...")
        if not cluster.namespace_exists_and_owned(QUARKS_NAMESPACE):
            ui.exclamation("Skipping Quarks because namespace either doesn't exist or not owned by paasctl")
            return

        Helm(cluster.kubeconfig).uninstall("quarks-secret", QUARKS_NAMESPACE)
        self.delete_owned_namespace(cluster, ui, QUARKS_NAMESPACE)
        ui.success("Quarks removed")
