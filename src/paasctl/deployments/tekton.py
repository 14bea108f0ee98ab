"""Tekton pipeline engine and the staging pipeline.

The upstream release is applied as published. Staging resources live in
their own namespace: the pipeline every application push runs, and the
service account it runs as, which can push to the registry and deploy into
the workload namespace.
"""

from __future__ import annotations

from typing import Any

from .. import durations
from ..kubernetes.cluster import OWNER_LABEL_KEY, OWNER_LABEL_VALUE, Cluster
from ..kubernetes.deployment import Deployment
from ..kubernetes.options import ScopedOptions
from ..kubernetes.tools import Kubectl
from ..termui import UI
from .gitea import GITEA_CREDS_SECRET, GITEA_NAMESPACE, basic_auth_secret, read_basic_auth
from .registry import REGISTRY_CREDS_SECRET, REGISTRY_NAMESPACE, docker_config_secret
from .workloads import DEFAULT_BUILDER_IMAGE, GITEA_INTERNAL_URL, WORKLOADS_NAMESPACE

TEKTON_DEPLOYMENT_ID = "tekton"
TEKTON_NAMESPACE = "tekton-pipelines"
TEKTON_VERSION = "v0.23.0"
TEKTON_RELEASE_URL = (
    f"https://storage.googleapis.com/tekton-releases/pipeline/previous/{TEKTON_VERSION}/release.yaml"
)
TEKTON_SELECTORS = ("app=tekton-pipelines-controller", "app=tekton-pipelines-webhook")
STAGING_NAMESPACE = "tekton-staging"
STAGING_SERVICE_ACCOUNT = "staging-triggers-admin"
STAGING_PIPELINE = "staging-pipeline"
STAGING_TASK = "stage"
KUBECTL_IMAGE = "bitnami/kubectl:1.21"


def staging_manifests(builder_image: str = DEFAULT_BUILDER_IMAGE) -> list[dict[str, Any]]:
    """Service account, permissions, task and pipeline used to stage applications."""
    labels = {OWNER_LABEL_KEY: OWNER_LABEL_VALUE}
    service_account = {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {"name": STAGING_SERVICE_ACCOUNT, "namespace": STAGING_NAMESPACE, "labels": labels},
        "secrets": [{"name": REGISTRY_CREDS_SECRET}, {"name": GITEA_CREDS_SECRET}],
    }
    # Deploying staged applications needs write access to the workload namespace
    role_binding = {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "RoleBinding",
        "metadata": {"name": STAGING_SERVICE_ACCOUNT, "namespace": WORKLOADS_NAMESPACE, "labels": labels},
        "roleRef": {"apiGroup": "rbac.authorization.k8s.io", "kind": "ClusterRole", "name": "edit"},
        "subjects": [
            {"kind": "ServiceAccount", "name": STAGING_SERVICE_ACCOUNT, "namespace": STAGING_NAMESPACE}
        ],
    }
    task = {
        "apiVersion": "tekton.dev/v1beta1",
        "kind": "Task",
        "metadata": {"name": STAGING_TASK, "namespace": STAGING_NAMESPACE, "labels": labels},
        "spec": {
            "workspaces": [{"name": "source"}],
            "resources": {
                "inputs": [{"name": "source-repo", "type": "git"}],
                "outputs": [{"name": "image", "type": "image"}],
            },
            "steps": [
                {
                    "name": "build",
                    "image": builder_image,
                    "command": ["/cnb/lifecycle/creator"],
                    "args": [
                        "-app=$(resources.inputs.source-repo.path)",
                        "-layers=$(workspaces.source.path)/layers",
                        "$(resources.outputs.image.url)",
                    ],
                },
                {
                    "name": "deploy",
                    "image": KUBECTL_IMAGE,
                    "command": ["kubectl"],
                    "args": [
                        "apply",
                        "--namespace",
                        WORKLOADS_NAMESPACE,
                        "-f",
                        "$(resources.inputs.source-repo.path)/.kube/",
                    ],
                },
            ],
        },
    }
    pipeline = {
        "apiVersion": "tekton.dev/v1beta1",
        "kind": "Pipeline",
        "metadata": {"name": STAGING_PIPELINE, "namespace": STAGING_NAMESPACE, "labels": labels},
        "spec": {
            "workspaces": [{"name": "source"}],
            "resources": [
                {"name": "source-repo", "type": "git"},
                {"name": "image", "type": "image"},
            ],
            "tasks": [
                {
                    "name": STAGING_TASK,
                    "taskRef": {"name": STAGING_TASK},
                    "workspaces": [{"name": "source", "workspace": "source"}],
                    "resources": {
                        "inputs": [{"name": "source-repo", "resource": "source-repo"}],
                        "outputs": [{"name": "image", "resource": "image"}],
                    },
                }
            ],
        },
    }
    return [service_account, role_binding, task, pipeline]


class Tekton(Deployment):
    """Pipeline engine running application staging."""

    def id(self) -> str:
        return TEKTON_DEPLOYMENT_ID

    def describe(self) -> str:
        return f"Tekton pipelines version: {TEKTON_VERSION}"

    def get_version(self) -> str:
        return TEKTON_VERSION

    def _wait_for_engine(self, cluster: Cluster) -> None:
        for selector in TEKTON_SELECTORS:
            cluster.wait_until_pod_by_selector_exist(TEKTON_NAMESPACE, selector, self.timeout)
            cluster.wait_for_pod_by_selector_running(TEKTON_NAMESPACE, selector, self.timeout)

    def _create_staging_namespace(self, cluster: Cluster) -> None:
        git_username, git_password = read_basic_auth(cluster.get_secret(GITEA_NAMESPACE, GITEA_CREDS_SECRET))
        registry_username, registry_password = read_basic_auth(
            cluster.get_secret(REGISTRY_NAMESPACE, REGISTRY_CREDS_SECRET)
        )

        cluster.create_namespace(STAGING_NAMESPACE)
        git_secret = basic_auth_secret(GITEA_CREDS_SECRET, git_username, git_password)
        git_secret["metadata"]["annotations"] = {"tekton.dev/git-0": GITEA_INTERNAL_URL}
        cluster.create_secret(STAGING_NAMESPACE, git_secret)
        cluster.create_secret(
            STAGING_NAMESPACE,
            docker_config_secret(REGISTRY_CREDS_SECRET, registry_username, registry_password),
        )

    def deploy(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        self.ensure_absent(cluster, TEKTON_NAMESPACE)
        self.ensure_absent(cluster, STAGING_NAMESPACE)

        ui.note("Deploying Tekton...")
        kubectl = Kubectl(cluster.kubeconfig)
        kubectl.apply_url(TEKTON_RELEASE_URL)
        cluster.label_namespace(TEKTON_NAMESPACE, OWNER_LABEL_KEY, OWNER_LABEL_VALUE)

        with ui.progress("Waiting for Tekton to be running"):
            self._wait_for_engine(cluster)

        self._create_staging_namespace(cluster)
        # The pipeline CRDs are only served once the webhook runs
        kubectl.apply_manifests(staging_manifests())
        ui.success("Tekton deployed")

    def upgrade(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        if not cluster.namespace_exists_and_owned(TEKTON_NAMESPACE):
            ui.exclamation("Tekton is not installed by paasctl, skipping upgrade")
            return

        ui.note("Upgrading Tekton...")
        kubectl = Kubectl(cluster.kubeconfig)
        kubectl.apply_url(TEKTON_RELEASE_URL)
        with ui.progress("Waiting for Tekton to be running"):
            self._wait_for_engine(cluster)
        kubectl.apply_manifests(staging_manifests())
        ui.success("Tekton upgraded")

    def delete(self, cluster: Cluster, ui: UI) -> None:
        ui.note("Removing Tekton...")
        self.delete_owned_namespace(cluster, ui, STAGING_NAMESPACE)

        if not cluster.namespace_exists_and_owned(TEKTON_NAMESPACE):
            ui.exclamation("Skipping Tekton because namespace either doesn't exist or not owned by paasctl")
            return

        # The release owns its namespace; deleting it removes the namespace too
        with ui.progress("Deleting Tekton release"):
            Kubectl(cluster.kubeconfig).delete_url(TEKTON_RELEASE_URL)
            cluster.wait_for_namespace_gone(TEKTON_NAMESPACE, durations.to_namespace_deletion())
        ui.success("Tekton removed")
