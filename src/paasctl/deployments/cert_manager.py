"""cert-manager and the production ClusterIssuer.

Staged applications on a real system domain request their certificate from
the `letsencrypt-production` issuer created here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .. import durations
from ..errors import AlreadyExistsError
from ..kubernetes.cluster import OWNER_LABEL_KEY, OWNER_LABEL_VALUE, Cluster
from ..kubernetes.deployment import Deployment
from ..kubernetes.options import ScopedOptions
from ..kubernetes.tools import Kubectl
from ..shared.logging import get_logger
from ..termui import UI

logger = get_logger(__name__)

CERT_MANAGER_DEPLOYMENT_ID = "cert-manager"
CERT_MANAGER_NAMESPACE = "cert-manager"
CERT_MANAGER_VERSION = "v1.3.1"
CERT_MANAGER_RELEASE_URL = (
    f"https://github.com/jetstack/cert-manager/releases/download/{CERT_MANAGER_VERSION}/cert-manager.yaml"
)
CERT_MANAGER_SELECTORS = ("app=cert-manager", "app=webhook")
CLUSTER_ISSUER_NAME = "letsencrypt-production"
LETSENCRYPT_PRODUCTION_URL = "https://acme-v02.api.letsencrypt.org/directory"


def cluster_issuer(email: str) -> dict[str, Any]:
    acme: dict[str, Any] = {
        "server": LETSENCRYPT_PRODUCTION_URL,
        "privateKeySecretRef": {"name": CLUSTER_ISSUER_NAME},
        "solvers": [{"http01": {"ingress": {"class": "traefik"}}}],
    }
    if email:
        acme["email"] = email
    return {
        "apiVersion": "cert-manager.io/v1",
        "kind": "ClusterIssuer",
        "metadata": {"name": CLUSTER_ISSUER_NAME, "labels": {OWNER_LABEL_KEY: OWNER_LABEL_VALUE}},
        "spec": {"acme": acme},
    }


@dataclass
class CertManagerConfig:
    """Options for the cert-manager deployment."""

    email: str = ""

    @classmethod
    def from_options(cls, options: ScopedOptions) -> CertManagerConfig:
        return cls(email=options.value("email"))


class CertManager(Deployment):
    """Certificate issuer for application routes."""

    def id(self) -> str:
        return CERT_MANAGER_DEPLOYMENT_ID

    def describe(self) -> str:
        return f"cert-manager version: {CERT_MANAGER_VERSION}"

    def get_version(self) -> str:
        return CERT_MANAGER_VERSION

    def _wait_for_manager(self, cluster: Cluster) -> None:
        for selector in CERT_MANAGER_SELECTORS:
            cluster.wait_until_pod_by_selector_exist(CERT_MANAGER_NAMESPACE, selector, self.timeout)
            cluster.wait_for_pod_by_selector_running(CERT_MANAGER_NAMESPACE, selector, self.timeout)

    def deploy(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        self.ensure_absent(cluster, CERT_MANAGER_NAMESPACE)
        config = CertManagerConfig.from_options(options)

        ui.note("Deploying cert-manager...")
        Kubectl(cluster.kubeconfig).apply_url(CERT_MANAGER_RELEASE_URL)
        cluster.label_namespace(CERT_MANAGER_NAMESPACE, OWNER_LABEL_KEY, OWNER_LABEL_VALUE)

        with ui.progress("Waiting for cert-manager to be running"):
            self._wait_for_manager(cluster)

        try:
            cluster.create_custom_object(
                "cert-manager.io", "v1", "clusterissuers", cluster_issuer(config.email)
            )
        except AlreadyExistsError:
            logger.info("cluster issuer exists", name=CLUSTER_ISSUER_NAME)

        ui.success("cert-manager deployed")

    def upgrade(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        if not cluster.namespace_exists_and_owned(CERT_MANAGER_NAMESPACE):
            ui.exclamation("cert-manager is not installed by paasctl, skipping upgrade")
            return

        ui.note("Upgrading cert-manager...")
        Kubectl(cluster.kubeconfig).apply_url(CERT_MANAGER_RELEASE_URL)
        with ui.progress("Waiting for cert-manager to be running"):
            self._wait_for_manager(cluster)
        ui.success("cert-manager upgraded")

    def delete(self, cluster: Cluster, ui: UI) -> None:
        ui.note("Removing cert-manager...")
        if not cluster.namespace_exists_and_owned(CERT_MANAGER_NAMESPACE):
            ui.exclamation(
                "Skipping cert-manager because namespace either doesn't exist or not owned by paasctl"
            )
            return

        # Removing the CRDs takes the ClusterIssuer with them
        with ui.progress("Deleting cert-manager release"):
            Kubectl(cluster.kubeconfig).delete_url(CERT_MANAGER_RELEASE_URL)
            cluster.wait_for_namespace_gone(CERT_MANAGER_NAMESPACE, durations.to_namespace_deletion())
        ui.success("cert-manager removed")
