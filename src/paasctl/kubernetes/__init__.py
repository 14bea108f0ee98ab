"""Cluster access and the deployment orchestration primitives.

This package provides:
- Cluster: control-plane handle with queries, waits and ownership checks
- Platform detection for known Kubernetes distributions
- poll_until: the bounded polling loop every wait is built on
- Installation options and their readers
- Deployment: the lifecycle contract of an installable component
"""

from .cluster import OWNER_LABEL_KEY, OWNER_LABEL_VALUE, Cluster, get_cluster
from .deployment import Deployment
from .options import (
    SYSTEM_DOMAIN,
    CLIOptionsReader,
    DefaultOptionsReader,
    InstallationOption,
    InstallationOptions,
    InteractiveOptionsReader,
    OptionType,
    ScopedOptions,
)
from .platforms import SUPPORTED_PLATFORMS, Generic, Platform, detect_platform
from .tools import Helm, Kubectl
from .wait import poll_until

__all__ = [
    # Cluster
    "Cluster",
    "get_cluster",
    "OWNER_LABEL_KEY",
    "OWNER_LABEL_VALUE",
    # Platforms
    "Platform",
    "Generic",
    "SUPPORTED_PLATFORMS",
    "detect_platform",
    # Waiting
    "poll_until",
    # Options
    "SYSTEM_DOMAIN",
    "OptionType",
    "InstallationOption",
    "InstallationOptions",
    "ScopedOptions",
    "CLIOptionsReader",
    "InteractiveOptionsReader",
    "DefaultOptionsReader",
    # Deployments
    "Deployment",
    # Tools
    "Kubectl",
    "Helm",
]
