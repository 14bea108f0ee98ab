"""kubectl and helm runners.

Deployment units install upstream releases and charts through the same
tools an operator would use by hand. Failures raise RemoteAPIError with the
tool's stderr.
"""

from __future__ import annotations

import subprocess
from typing import Any

import yaml

from ..errors import RemoteAPIError
from ..shared.logging import get_logger

logger = get_logger(__name__)


def _run(cmd: list[str], input_text: str | None = None) -> str:
    """Run a tool command and return its stdout.

    Raises:
        RemoteAPIError: The tool is missing or exited non-zero.
    """
    logger.debug("run", command=" ".join(cmd[:4]))
    try:
        result = subprocess.run(cmd, input=input_text, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise RemoteAPIError(message=f"{cmd[0]} not found. Is {cmd[0]} installed?") from e

    if result.returncode != 0:
        raise RemoteAPIError(
            message=f"{' '.join(cmd[:3])} failed: {result.stderr.strip()}",
            data={"command": cmd, "stderr": result.stderr, "stdout": result.stdout},
        )
    return result.stdout


class Kubectl:
    """Apply and delete manifests using kubectl."""

    def __init__(self, kubeconfig: str | None = None):
        """Initialize runner.

        Args:
            kubeconfig: Path to kubeconfig file.
        """
        self.kubeconfig = kubeconfig

    def _kubectl_cmd(self) -> list[str]:
        """Build base kubectl command."""
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        return cmd

    def apply_manifests(self, manifests: list[dict[str, Any]]) -> str:
        """Apply manifests (sent as multi-document YAML on stdin)."""
        documents = yaml.dump_all(manifests, default_flow_style=False, sort_keys=False)
        return _run(self._kubectl_cmd() + ["apply", "-f", "-"], input_text=documents)

    def apply_url(self, url: str) -> str:
        """Apply a released manifest bundle (URL or local path)."""
        return _run(self._kubectl_cmd() + ["apply", "-f", url])

    def delete_url(self, url: str) -> str:
        return _run(self._kubectl_cmd() + ["delete", "--ignore-not-found", "-f", url])


class Helm:
    """Install, upgrade and remove helm releases."""

    def __init__(self, kubeconfig: str | None = None):
        self.kubeconfig = kubeconfig

    def _helm_cmd(self) -> list[str]:
        cmd = ["helm"]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        return cmd

    def _chart_args(
        self,
        chart: str,
        namespace: str,
        repo: str | None,
        version: str | None,
        values: dict[str, Any] | None,
    ) -> list[str]:
        args = [chart, "--namespace", namespace]
        if repo:
            args.extend(["--repo", repo])
        if version:
            args.extend(["--version", version])
        if values:
            # Values go through stdin so credentials never show up in `ps`
            args.extend(["--values", "-"])
        return args

    def install(
        self,
        release: str,
        chart: str,
        namespace: str,
        repo: str | None = None,
        version: str | None = None,
        values: dict[str, Any] | None = None,
    ) -> str:
        cmd = self._helm_cmd() + ["install", release] + self._chart_args(
            chart, namespace, repo, version, values
        )
        return _run(cmd, input_text=yaml.safe_dump(values) if values else None)

    def upgrade(
        self,
        release: str,
        chart: str,
        namespace: str,
        repo: str | None = None,
        version: str | None = None,
        values: dict[str, Any] | None = None,
    ) -> str:
        cmd = self._helm_cmd() + ["upgrade", release] + self._chart_args(
            chart, namespace, repo, version, values
        )
        return _run(cmd + ["--reuse-values"], input_text=yaml.safe_dump(values) if values else None)

    def uninstall(self, release: str, namespace: str) -> str:
        return _run(self._helm_cmd() + ["uninstall", release, "--namespace", namespace])
