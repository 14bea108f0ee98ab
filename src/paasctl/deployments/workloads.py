"""Namespace user applications run in.

Besides the namespace itself this sets up what staged applications need:
pull credentials for the registry, git credentials for the staging
pipeline, a service account carrying both, the quarks CA used for local
certificates, and the app-ingress default backend. A warm-up job pulls the
builder image so the first staging doesn't pay for it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .. import durations
from ..kubernetes.cluster import OWNER_LABEL_KEY, OWNER_LABEL_VALUE, Cluster
from ..kubernetes.deployment import Deployment
from ..kubernetes.options import ScopedOptions
from ..kubernetes.tools import Kubectl
from ..termui import UI
from .gitea import GITEA_CREDS_SECRET, GITEA_NAMESPACE, basic_auth_secret, read_basic_auth
from .quarks import QUARKS_MONITORED_ID, QUARKS_MONITORED_LABEL
from .registry import REGISTRY_CREDS_SECRET, REGISTRY_NAMESPACE, docker_config_secret

WORKLOADS_DEPLOYMENT_ID = "workloads"
WORKLOADS_NAMESPACE = "paasctl-workloads"
WORKLOADS_VERSION = "0.1"
WORKLOADS_SERVICE_ACCOUNT = "paasctl-workloads"
APP_INGRESS_NAMESPACE = "app-ingress"
APP_INGRESS_SELECTOR = "name=app-ingress"
APP_INGRESS_IMAGE = "k8s.gcr.io/defaultbackend-amd64:1.5"
CA_CERT_NAME = "ca-cert"
WARMUP_JOB_NAME = "buildpack-builder-warmup"
DEFAULT_BUILDER_IMAGE = "paketobuildpacks/builder:full"
# In-cluster address of the gitea http service
GITEA_INTERNAL_URL = f"http://gitea-http.{GITEA_NAMESPACE}:3000"


def app_ingress_manifests() -> list[dict[str, Any]]:
    """Default backend answering routes with no running application."""
    labels = {"name": "app-ingress", OWNER_LABEL_KEY: OWNER_LABEL_VALUE}
    return [
        {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": "app-ingress", "namespace": APP_INGRESS_NAMESPACE, "labels": labels},
            "spec": {
                "replicas": 1,
                "selector": {"matchLabels": {"name": "app-ingress"}},
                "template": {
                    "metadata": {"labels": labels},
                    "spec": {
                        "containers": [
                            {
                                "name": "app-ingress",
                                "image": APP_INGRESS_IMAGE,
                                "ports": [{"containerPort": 8080}],
                            }
                        ]
                    },
                },
            },
        },
        {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": "app-ingress", "namespace": APP_INGRESS_NAMESPACE, "labels": labels},
            "spec": {
                "selector": {"name": "app-ingress"},
                "ports": [{"port": 80, "targetPort": 8080}],
            },
        },
    ]


def service_account(name: str) -> dict[str, Any]:
    """Service account for application pods.

    Image pull secrets on the account are copied into every pod using it.
    """
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {"name": name},
        "imagePullSecrets": [{"name": REGISTRY_CREDS_SECRET}, {"name": GITEA_CREDS_SECRET}],
        "automountServiceAccountToken": False,
    }


def ca_certificate() -> dict[str, Any]:
    return {
        "apiVersion": "quarks.cloudfoundry.org/v1alpha1",
        "kind": "QuarksSecret",
        "metadata": {"name": CA_CERT_NAME},
        "spec": {
            "type": "certificate",
            "secretName": CA_CERT_NAME,
            "request": {"certificate": {"isCA": True, "commonName": "paasctl CA"}},
        },
    }


def warmup_job(builder_image: str) -> dict[str, Any]:
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {"name": WARMUP_JOB_NAME, "labels": {OWNER_LABEL_KEY: OWNER_LABEL_VALUE}},
        "spec": {
            "backoffLimit": 1,
            "template": {
                "spec": {
                    "containers": [{"name": "warmup", "image": builder_image, "command": ["/bin/ls"]}],
                    "restartPolicy": "Never",
                }
            },
        },
    }


@dataclass
class WorkloadsConfig:
    """Options for the workloads deployment."""

    builder_image: str = DEFAULT_BUILDER_IMAGE
    skip_warmup: bool = False

    @classmethod
    def from_options(cls, options: ScopedOptions) -> WorkloadsConfig:
        return cls(
            builder_image=options.value("builder_image") or DEFAULT_BUILDER_IMAGE,
            skip_warmup=options.value("skip_warmup"),
        )


class Workloads(Deployment):
    """Workload namespace and the app-ingress backend."""

    def id(self) -> str:
        return WORKLOADS_DEPLOYMENT_ID

    def describe(self) -> str:
        return f"Workloads app ingress version: {WORKLOADS_VERSION}"

    def get_version(self) -> str:
        return WORKLOADS_VERSION

    def _create_namespace(self, cluster: Cluster) -> None:
        # Credentials are created by the gitea and registry units, installed earlier
        git_username, git_password = read_basic_auth(cluster.get_secret(GITEA_NAMESPACE, GITEA_CREDS_SECRET))
        registry_username, registry_password = read_basic_auth(
            cluster.get_secret(REGISTRY_NAMESPACE, REGISTRY_CREDS_SECRET)
        )

        cluster.create_namespace(
            WORKLOADS_NAMESPACE, labels={QUARKS_MONITORED_LABEL: QUARKS_MONITORED_ID}
        )

        git_secret = basic_auth_secret(GITEA_CREDS_SECRET, git_username, git_password)
        git_secret["metadata"]["annotations"] = {"tekton.dev/git-0": GITEA_INTERNAL_URL}
        cluster.create_secret(WORKLOADS_NAMESPACE, git_secret)
        cluster.create_secret(
            WORKLOADS_NAMESPACE,
            docker_config_secret(REGISTRY_CREDS_SECRET, registry_username, registry_password),
        )
        cluster.create_service_account(WORKLOADS_NAMESPACE, service_account(WORKLOADS_SERVICE_ACCOUNT))
        cluster.create_custom_object(
            "quarks.cloudfoundry.org",
            "v1alpha1",
            "quarkssecrets",
            ca_certificate(),
            namespace=WORKLOADS_NAMESPACE,
        )

    def _warmup_builder(self, cluster: Cluster, builder_image: str) -> None:
        cluster.create_job(WORKLOADS_NAMESPACE, warmup_job(builder_image))
        cluster.wait_for_job_completed(
            WORKLOADS_NAMESPACE, WARMUP_JOB_NAME, durations.to_warmup_job_ready()
        )

    def deploy(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        self.ensure_absent(cluster, WORKLOADS_NAMESPACE)
        self.ensure_absent(cluster, APP_INGRESS_NAMESPACE)
        config = WorkloadsConfig.from_options(options)

        ui.note("Deploying Workloads...")
        self._create_namespace(cluster)

        cluster.create_namespace(APP_INGRESS_NAMESPACE, labels={"name": "app-ingress"})
        Kubectl(cluster.kubeconfig).apply_manifests(app_ingress_manifests())

        with ui.progress("Waiting for app-ingress to exist"):
            cluster.wait_until_pod_by_selector_exist(
                APP_INGRESS_NAMESPACE, APP_INGRESS_SELECTOR, self.timeout
            )
        ui.success("Workloads deployed")

        if config.skip_warmup:
            return
        with ui.progress("Warming up cluster with builder image"):
            self._warmup_builder(cluster, config.builder_image)

    def delete(self, cluster: Cluster, ui: UI) -> None:
        ui.note("Removing Workloads...")
        if not self.delete_owned_namespace(cluster, ui, WORKLOADS_NAMESPACE):
            return
        if not self.delete_owned_namespace(cluster, ui, APP_INGRESS_NAMESPACE):
            return
        ui.success("Workloads removed")
