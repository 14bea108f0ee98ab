"""Container image registry.

A plain `registry:2` deployment behind htpasswd auth, published on a fixed
node port so the cluster's container runtime can pull from it. The
htpasswd file is generated at pod start from the credentials secret.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any

from ..kubernetes.cluster import OWNER_LABEL_KEY, OWNER_LABEL_VALUE, Cluster
from ..kubernetes.deployment import Deployment
from ..kubernetes.options import ScopedOptions
from ..kubernetes.tools import Kubectl
from ..termui import UI
from .gitea import basic_auth_secret

REGISTRY_DEPLOYMENT_ID = "registry"
REGISTRY_NAMESPACE = "paasctl-registry"
REGISTRY_VERSION = "2.7.1"
REGISTRY_IMAGE = f"registry:{REGISTRY_VERSION}"
HTPASSWD_IMAGE = "httpd:2.4-alpine"
REGISTRY_CREDS_SECRET = "registry-creds"
REGISTRY_SELECTOR = "app=registry"
REGISTRY_NODE_PORT = 30500
# Address the nodes' container runtime pulls staged images from
REGISTRY_PULL_URL = f"127.0.0.1:{REGISTRY_NODE_PORT}"
# Address the staging pipeline pushes to from inside the cluster
REGISTRY_PUSH_URL = f"registry.{REGISTRY_NAMESPACE}:5000"


def docker_config_secret(name: str, username: str, password: str) -> dict[str, Any]:
    """Image pull/push secret for the registry, valid for both addresses."""
    auth = base64.b64encode(f"{username}:{password}".encode()).decode()
    entry = {"username": username, "password": password, "auth": auth}
    config = {"auths": {REGISTRY_PULL_URL: entry, REGISTRY_PUSH_URL: entry}}
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name},
        "type": "kubernetes.io/dockerconfigjson",
        "stringData": {".dockerconfigjson": json.dumps(config)},
    }


def registry_manifests() -> list[dict[str, Any]]:
    labels = {"app": "registry", OWNER_LABEL_KEY: OWNER_LABEL_VALUE}

    def secret_env(name: str, key: str) -> dict[str, Any]:
        return {"name": name, "valueFrom": {"secretKeyRef": {"name": REGISTRY_CREDS_SECRET, "key": key}}}

    deployment = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "registry", "namespace": REGISTRY_NAMESPACE, "labels": labels},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"app": "registry"}},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "initContainers": [
                        {
                            "name": "htpasswd",
                            "image": HTPASSWD_IMAGE,
                            "command": [
                                "sh",
                                "-c",
                                'htpasswd -Bbn "$REGISTRY_USERNAME" "$REGISTRY_PASSWORD" > /auth/htpasswd',
                            ],
                            "env": [
                                secret_env("REGISTRY_USERNAME", "username"),
                                secret_env("REGISTRY_PASSWORD", "password"),
                            ],
                            "volumeMounts": [{"name": "auth", "mountPath": "/auth"}],
                        }
                    ],
                    "containers": [
                        {
                            "name": "registry",
                            "image": REGISTRY_IMAGE,
                            "ports": [{"containerPort": 5000, "name": "registry"}],
                            "env": [
                                {"name": "REGISTRY_AUTH", "value": "htpasswd"},
                                {"name": "REGISTRY_AUTH_HTPASSWD_REALM", "value": "paasctl registry"},
                                {"name": "REGISTRY_AUTH_HTPASSWD_PATH", "value": "/auth/htpasswd"},
                            ],
                            "volumeMounts": [
                                {"name": "auth", "mountPath": "/auth", "readOnly": True},
                                {"name": "data", "mountPath": "/var/lib/registry"},
                            ],
                        }
                    ],
                    "volumes": [
                        {"name": "auth", "emptyDir": {}},
                        {"name": "data", "emptyDir": {}},
                    ],
                },
            },
        },
    }
    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": "registry", "namespace": REGISTRY_NAMESPACE, "labels": labels},
        "spec": {
            "type": "NodePort",
            "selector": {"app": "registry"},
            "ports": [
                {"name": "registry", "port": 5000, "targetPort": 5000, "nodePort": REGISTRY_NODE_PORT}
            ],
        },
    }
    return [deployment, service]


@dataclass
class RegistryConfig:
    """Options for the registry deployment."""

    username: str
    password: str

    @classmethod
    def from_options(cls, options: ScopedOptions) -> RegistryConfig:
        return cls(username=options.value("username"), password=options.value("password"))


class Registry(Deployment):
    """Registry the staging pipeline pushes built images to."""

    def id(self) -> str:
        return REGISTRY_DEPLOYMENT_ID

    def describe(self) -> str:
        return f"Container registry version: {REGISTRY_VERSION}"

    def get_version(self) -> str:
        return REGISTRY_VERSION

    def deploy(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        self.ensure_absent(cluster, REGISTRY_NAMESPACE)
        config = RegistryConfig.from_options(options)

        ui.note("Deploying Registry...")
        cluster.create_namespace(REGISTRY_NAMESPACE)
        cluster.create_secret(
            REGISTRY_NAMESPACE,
            basic_auth_secret(REGISTRY_CREDS_SECRET, config.username, config.password),
        )
        Kubectl(cluster.kubeconfig).apply_manifests(registry_manifests())

        with ui.progress("Waiting for Registry to be running"):
            cluster.wait_until_pod_by_selector_exist(REGISTRY_NAMESPACE, REGISTRY_SELECTOR, self.timeout)
            cluster.wait_for_pod_by_selector_running(REGISTRY_NAMESPACE, REGISTRY_SELECTOR, self.timeout)

        ui.success("Registry deployed")

    def delete(self, cluster: Cluster, ui: UI) -> None:
        ui.note("Removing Registry...")
        # Deployment and service live in the namespace and go with it
        if self.delete_owned_namespace(cluster, ui, REGISTRY_NAMESPACE):
            ui.success("Registry removed")
