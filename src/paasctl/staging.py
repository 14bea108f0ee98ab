"""Per-application staging.

Staging an application submits one run of the staging pipeline and makes
sure the application's route has a TLS certificate:

    stager = Stager(get_cluster(), system_domain)
    result = stager.stage(App(name="foo", namespace="workspace", ...))

Run names get a random suffix, so concurrent stages of the same application
never collide. The certificate is named after the application; a second
stage finds it already requested and carries on.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any

from .deployments.tekton import STAGING_NAMESPACE, STAGING_PIPELINE, STAGING_SERVICE_ACCOUNT
from .deployments.cert_manager import CLUSTER_ISSUER_NAME
from .deployments.workloads import CA_CERT_NAME
from .errors import AlreadyExistsError
from .installer import MAGIC_DOMAIN_SUFFIX
from .kubernetes.cluster import OWNER_LABEL_KEY, OWNER_LABEL_VALUE, Cluster
from .shared.logging import get_logger

logger = get_logger(__name__)

TEKTON_GROUP = "tekton.dev"
TEKTON_VERSION = "v1beta1"
QUARKS_GROUP = "quarks.cloudfoundry.org"
QUARKS_VERSION = "v1alpha1"
CERT_MANAGER_GROUP = "cert-manager.io"
CERT_MANAGER_VERSION = "v1"


@dataclass
class App:
    """An application to stage."""

    name: str
    # Namespace (organization) the application is deployed to
    namespace: str
    revision: str
    git_url: str
    image_url: str

    def route(self, system_domain: str) -> str:
        return f"{self.name}.{system_domain}"


@dataclass
class StageResult:
    """What stage() created."""

    pipeline_run: dict[str, Any]
    certificate: dict[str, Any]
    # False when the certificate had been requested by an earlier stage
    certificate_created: bool = True

    @property
    def pipeline_run_name(self) -> str:
        return self.pipeline_run["metadata"]["name"]


def uid() -> str:
    """Random 16 hex character suffix for run names."""
    return secrets.token_hex(8)


def new_pipeline_run(run_id: str, app: App) -> dict[str, Any]:
    """Body of a staging PipelineRun for app, named <app name><run_id>."""
    return {
        "apiVersion": f"{TEKTON_GROUP}/{TEKTON_VERSION}",
        "kind": "PipelineRun",
        "metadata": {
            "name": app.name + run_id,
            "namespace": STAGING_NAMESPACE,
            "labels": {
                "app.kubernetes.io/name": app.name,
                "app.kubernetes.io/part-of": app.namespace,
                OWNER_LABEL_KEY: OWNER_LABEL_VALUE,
                "app.kubernetes.io/component": "staging",
            },
        },
        "spec": {
            "serviceAccountName": STAGING_SERVICE_ACCOUNT,
            "pipelineRef": {"name": STAGING_PIPELINE},
            "workspaces": [
                {
                    "name": "source",
                    "volumeClaimTemplate": {
                        "spec": {
                            "accessModes": ["ReadWriteOnce"],
                            "resources": {"requests": {"storage": "1Gi"}},
                        }
                    },
                }
            ],
            "resources": [
                {
                    "name": "source-repo",
                    "resourceSpec": {
                        "type": "git",
                        "params": [
                            {"name": "revision", "value": app.revision},
                            {"name": "url", "value": app.git_url},
                        ],
                    },
                },
                {
                    "name": "image",
                    "resourceSpec": {
                        "type": "image",
                        "params": [{"name": "url", "value": app.image_url}],
                    },
                },
            ],
        },
    }


def local_certificate(app: App, system_domain: str) -> dict[str, Any]:
    """QuarksSecret signed by the workload namespace's own CA."""
    route = app.route(system_domain)
    return {
        "apiVersion": f"{QUARKS_GROUP}/{QUARKS_VERSION}",
        "kind": "QuarksSecret",
        "metadata": {"name": app.name, "namespace": app.namespace},
        "spec": {
            "request": {
                "certificate": {
                    "CAKeyRef": {"key": "private_key", "name": CA_CERT_NAME},
                    "CARef": {"key": "certificate", "name": CA_CERT_NAME},
                    "commonName": route,
                    "isCA": False,
                    "alternativeNames": [route],
                    "signerType": "local",
                }
            },
            "secretName": f"{app.name}-tls",
            "type": "tls",
        },
    }


def production_certificate(app: App, system_domain: str) -> dict[str, Any]:
    """cert-manager Certificate issued by the production ClusterIssuer."""
    route = app.route(system_domain)
    return {
        "apiVersion": f"{CERT_MANAGER_GROUP}/{CERT_MANAGER_VERSION}",
        "kind": "Certificate",
        "metadata": {"name": app.name, "namespace": app.namespace},
        "spec": {
            "commonName": route,
            "secretName": f"{app.name}-tls",
            "dnsNames": [route],
            "issuerRef": {"name": CLUSTER_ISSUER_NAME, "kind": "ClusterIssuer"},
        },
    }


class Stager:
    """Submit staging runs and certificates for applications."""

    def __init__(self, cluster: Cluster, system_domain: str):
        self.cluster = cluster
        self.system_domain = system_domain

    @property
    def uses_local_certificates(self) -> bool:
        # Synthesized domains can't pass an ACME challenge
        return self.system_domain.endswith(MAGIC_DOMAIN_SUFFIX)

    def stage(self, app: App) -> StageResult:
        """Start a staging run for app and request its route certificate.

        Raises:
            RemoteAPIError: Creating the run or the certificate failed.
        """
        run = new_pipeline_run(uid(), app)
        created_run = self.cluster.create_custom_object(
            TEKTON_GROUP, TEKTON_VERSION, "pipelineruns", run, namespace=STAGING_NAMESPACE
        )
        logger.info("pipeline run created", app=app.name, run=run["metadata"]["name"])

        certificate, created = self.create_certificate(app)
        return StageResult(
            pipeline_run=created_run or run,
            certificate=certificate,
            certificate_created=created,
        )

    def create_certificate(self, app: App) -> tuple[dict[str, Any], bool]:
        """Request the route certificate; an existing one counts as success.

        Returns:
            Tuple of (certificate body, whether it was created now).
        """
        if self.uses_local_certificates:
            body = local_certificate(app, self.system_domain)
            group, version, plural = QUARKS_GROUP, QUARKS_VERSION, "quarkssecrets"
        else:
            body = production_certificate(app, self.system_domain)
            group, version, plural = CERT_MANAGER_GROUP, CERT_MANAGER_VERSION, "certificates"

        try:
            created = self.cluster.create_custom_object(group, version, plural, body, namespace=app.namespace)
        except AlreadyExistsError:
            logger.info("certificate exists", app=app.name, kind=body["kind"])
            return body, False

        logger.info("certificate created", app=app.name, kind=body["kind"])
        return created or body, True
