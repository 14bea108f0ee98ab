"""Platform components paasctl installs, and the options they read."""

from __future__ import annotations

from ..kubernetes.deployment import Deployment
from ..kubernetes.options import SYSTEM_DOMAIN, InstallationOption, InstallationOptions, OptionType
from .cert_manager import CertManager
from .gitea import Gitea, generate_password
from .quarks import Quarks
from .registry import Registry
from .service_catalog import ServiceCatalog
from .tekton import Tekton
from .traefik import Traefik
from .workloads import DEFAULT_BUILDER_IMAGE, Workloads

__all__ = [
    "CertManager",
    "Gitea",
    "Quarks",
    "Registry",
    "ServiceCatalog",
    "Tekton",
    "Traefik",
    "Workloads",
    "default_deployments",
    "default_options",
]


def default_options() -> InstallationOptions:
    """Every option the default deployments read, in prompt order."""
    return InstallationOptions(
        [
            InstallationOption(
                name=SYSTEM_DOMAIN,
                type=OptionType.STRING,
                description="The domain you are planning to use for paasctl. Should be "
                "pointing to the Traefik public IP (leave empty to use an "
                "<ip>.omg.howdoi.website domain)",
            ),
            InstallationOption(
                name="traefik.load_balancer_ip",
                type=OptionType.STRING,
                description="IP address to request for the Traefik load balancer (optional)",
            ),
            InstallationOption(
                name="gitea.admin_username",
                type=OptionType.STRING,
                description="Gitea admin user name",
                default="dev",
            ),
            InstallationOption(
                name="gitea.admin_password",
                type=OptionType.STRING,
                description="Gitea admin password",
                default_func=generate_password,
            ),
            InstallationOption(
                name="gitea.admin_email",
                type=OptionType.STRING,
                description="Gitea admin email address",
                default="dev@example.com",
            ),
            InstallationOption(
                name="registry.username",
                type=OptionType.STRING,
                description="Container registry user name",
                default="admin",
            ),
            InstallationOption(
                name="registry.password",
                type=OptionType.STRING,
                description="Container registry password",
                default_func=generate_password,
            ),
            InstallationOption(
                name="workloads.builder_image",
                type=OptionType.STRING,
                description="Buildpack builder image used for staging",
                default=DEFAULT_BUILDER_IMAGE,
            ),
            InstallationOption(
                name="workloads.skip_warmup",
                type=OptionType.BOOLEAN,
                description="Skip pulling the builder image during install",
                default=False,
            ),
            InstallationOption(
                name="cert-manager.email",
                type=OptionType.STRING,
                description="Email address for Let's Encrypt registration (optional)",
            ),
        ]
    )


def default_deployments(timeout: float | None = None) -> list[Deployment]:
    """Units in install order; uninstall walks this list backwards."""
    return [
        Traefik(timeout),
        Quarks(timeout),
        Gitea(timeout),
        Registry(timeout),
        Workloads(timeout),
        Tekton(timeout),
        ServiceCatalog(timeout),
        CertManager(timeout),
    ]
