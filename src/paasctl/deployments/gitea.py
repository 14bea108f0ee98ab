"""Gitea source-control server.

Applications are pushed here before staging. The admin account is created
inside the running server pod; its credentials live in the `gitea-creds`
secret, which the workload namespace copies and which backup/restore keep.
"""

from __future__ import annotations

import base64
import secrets
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ..errors import AlreadyExistsError, NotFoundError, ValidationError
from ..kubernetes.cluster import Cluster
from ..kubernetes.deployment import Deployment
from ..kubernetes.options import InstallationOption, ScopedOptions
from ..kubernetes.tools import Helm
from ..shared.logging import get_logger
from ..termui import UI

logger = get_logger(__name__)

GITEA_DEPLOYMENT_ID = "gitea"
GITEA_NAMESPACE = "gitea"
GITEA_CHART_VERSION = "2.1.3"
GITEA_REPO = "https://dl.gitea.io/charts/"
GITEA_SELECTOR = "app.kubernetes.io/name=gitea"
GITEA_CONTAINER = "gitea"
GITEA_CREDS_SECRET = "gitea-creds"
GITEA_BACKUP_FILE = "gitea-creds.yaml"


def generate_password(option: InstallationOption | None = None) -> str:
    """Random password, usable as an option default_func."""
    return secrets.token_urlsafe(16)


def basic_auth_secret(
    name: str, username: str, password: str, labels: dict[str, str] | None = None
) -> dict[str, Any]:
    """Body of a kubernetes.io/basic-auth secret."""
    metadata: dict[str, Any] = {"name": name}
    if labels:
        metadata["labels"] = labels
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": metadata,
        "type": "kubernetes.io/basic-auth",
        "stringData": {"username": username, "password": password},
    }


def read_basic_auth(secret: Any) -> tuple[str, str]:
    """Decode (username, password) from a basic-auth secret object."""
    data = secret.data or {}
    return (
        base64.b64decode(data.get("username", "")).decode(),
        base64.b64decode(data.get("password", "")).decode(),
    )


@dataclass
class GiteaConfig:
    """Options for the Gitea deployment."""

    system_domain: str
    admin_username: str
    admin_password: str
    admin_email: str

    @property
    def host(self) -> str:
        return f"gitea.{self.system_domain}"

    @classmethod
    def from_options(cls, options: ScopedOptions) -> GiteaConfig:
        if not options.system_domain:
            raise ValidationError(
                message="Gitea needs a system domain; pass --system-domain or make sure "
                "the Traefik load balancer gets an address",
                data={"deployment": GITEA_DEPLOYMENT_ID},
            )
        return cls(
            system_domain=options.system_domain,
            admin_username=options.value("admin_username"),
            admin_password=options.value("admin_password"),
            admin_email=options.value("admin_email"),
        )


class Gitea(Deployment):
    """Git server the staging pipeline clones applications from."""

    def id(self) -> str:
        return GITEA_DEPLOYMENT_ID

    def describe(self) -> str:
        return f"Gitea version: {GITEA_CHART_VERSION}"

    def get_version(self) -> str:
        return GITEA_CHART_VERSION

    def _values(self, config: GiteaConfig) -> dict[str, Any]:
        return {
            "ingress": {
                "enabled": True,
                "hosts": [{"host": config.host, "paths": [{"path": "/", "pathType": "Prefix"}]}],
            },
            "service": {"http": {"type": "ClusterIP"}},
            "gitea": {
                "config": {
                    "server": {"DOMAIN": config.host, "ROOT_URL": f"http://{config.host}"},
                    "database": {"DB_TYPE": "sqlite3"},
                },
            },
            "postgresql": {"enabled": False},
            "memcached": {"enabled": False},
        }

    def _create_admin(self, cluster: Cluster, config: GiteaConfig) -> None:
        pods = cluster.list_pods(GITEA_NAMESPACE, GITEA_SELECTOR)
        if not pods:
            raise ValidationError(message="No gitea pod found to create the admin user in")

        # The password travels on stdin, never on the command line
        command = (
            "read -r PASSWORD && gitea admin user create --admin"
            f" --username {shlex.quote(config.admin_username)}"
            f" --email {shlex.quote(config.admin_email)}"
            ' --password "$PASSWORD" --must-change-password=false'
        )
        out, _ = cluster.exec_in_pod(
            GITEA_NAMESPACE,
            pods[0].metadata.name,
            GITEA_CONTAINER,
            command,
            stdin=config.admin_password + "\n",
        )
        logger.info("gitea admin created", username=config.admin_username, output=out)

    def deploy(self, cluster: Cluster, ui: UI, options: ScopedOptions) -> None:
        self.ensure_absent(cluster, GITEA_NAMESPACE)
        config = GiteaConfig.from_options(options)

        ui.note("Deploying Gitea...")
        cluster.create_namespace(GITEA_NAMESPACE)
        cluster.create_secret(
            GITEA_NAMESPACE,
            basic_auth_secret(GITEA_CREDS_SECRET, config.admin_username, config.admin_password),
        )
        Helm(cluster.kubeconfig).install(
            "gitea",
            "gitea",
            GITEA_NAMESPACE,
            repo=GITEA_REPO,
            version=GITEA_CHART_VERSION,
            values=self._values(config),
        )

        with ui.progress("Waiting for Gitea to be running"):
            cluster.wait_until_pod_by_selector_exist(GITEA_NAMESPACE, GITEA_SELECTOR, self.timeout)
            cluster.wait_for_pod_by_selector_running(GITEA_NAMESPACE, GITEA_SELECTOR, self.timeout)

        with ui.progress("Creating Gitea admin user"):
            self._create_admin(cluster, config)

        ui.success(f"Gitea deployed (http://{config.host})")

    def delete(self, cluster: Cluster, ui: UI) -> None:
        ui.note("Removing Gitea...")
        if not cluster.namespace_exists_and_owned(GITEA_NAMESPACE):
            ui.exclamation("Skipping Gitea because namespace either doesn't exist or not owned by paasctl")
            return

        Helm(cluster.kubeconfig).uninstall("gitea", GITEA_NAMESPACE)
        self.delete_owned_namespace(cluster, ui, GITEA_NAMESPACE)
        ui.success("Gitea removed")

    def backup(self, cluster: Cluster, ui: UI, target_dir: Path) -> None:
        """Save the admin credentials secret as YAML."""
        try:
            secret = cluster.get_secret(GITEA_NAMESPACE, GITEA_CREDS_SECRET)
        except NotFoundError:
            ui.exclamation("No Gitea credentials secret found, skipping Gitea backup")
            return
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / GITEA_BACKUP_FILE
        path.write_text(yaml.safe_dump({"type": secret.type, "data": dict(secret.data or {})}))
        ui.success(f"Gitea credentials saved to {path}")

    def restore(self, cluster: Cluster, ui: UI, source_dir: Path) -> None:
        """Recreate the admin credentials secret from a backup."""
        path = source_dir / GITEA_BACKUP_FILE
        if not path.exists():
            ui.exclamation(f"No Gitea backup found at {path}, skipping")
            return

        saved = yaml.safe_load(path.read_text()) or {}
        body = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": GITEA_CREDS_SECRET},
            "type": saved.get("type") or "kubernetes.io/basic-auth",
            "data": saved.get("data") or {},
        }
        try:
            cluster.create_secret(GITEA_NAMESPACE, body)
        except AlreadyExistsError:
            ui.exclamation("Gitea credentials secret exists already, leaving it unchanged")
            return
        ui.success("Gitea credentials restored")
